"""Inbound e-mail webhook: replies to task e-mails close the task.

Ignored outcomes always answer 200 so the e-mail provider never retries.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.config import get_settings
from conformidade_platform.infra.database import get_db
from conformidade_platform.services.inbound_email import InboundEmailService
from conformidade_platform.services.whatsapp_service import WhatsAppService, get_whatsapp_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    """Reject only when a secret is configured, sent, and different."""
    expected = get_settings().inbound_webhook_secret
    if expected and x_webhook_secret and not hmac.compare_digest(expected, x_webhook_secret):
        logger.warning("[inbound-email] invalid webhook secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/inbound-email", dependencies=[Depends(verify_webhook_secret)])
async def inbound_email(
    request: Request,
    db: AsyncSession = Depends(get_db),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
):
    try:
        payload = await request.json()
        return await InboundEmailService(db, whatsapp=whatsapp).process(payload)
    except Exception as exc:
        logger.exception("[inbound-email] processing failed")
        return JSONResponse(status_code=500, content={"error": str(exc)})
