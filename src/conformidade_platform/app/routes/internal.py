"""Internal cron endpoints, protected by X-Internal-Token."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.config import get_settings
from conformidade_platform.infra.database import get_db
from conformidade_platform.services.reminder_service import send_pending_reminders
from conformidade_platform.services.whatsapp_service import WhatsAppService, get_whatsapp_service

logger = logging.getLogger(__name__)


async def verify_internal_token(x_internal_token: str = Header(...)):
    """Verify that the request includes a valid internal auth token."""
    if x_internal_token != get_settings().internal_token:
        raise HTTPException(status_code=401, detail="Invalid internal token")


router = APIRouter(
    prefix="/api/internal",
    tags=["internal"],
    dependencies=[Depends(verify_internal_token)],
)


@router.post("/reminders")
async def run_reminders(
    db: AsyncSession = Depends(get_db),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
):
    """Send the one-time reminder to clients who have not answered an invite."""
    result = await send_pending_reminders(db, whatsapp=whatsapp)
    logger.info("Reminder run: %s", result)
    return result
