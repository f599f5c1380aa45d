"""Notification endpoints called by the front end."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.routes.auth import require_agencia
from conformidade_platform.domain.models import User
from conformidade_platform.domain.schemas import SignedDocumentEmailRequest
from conformidade_platform.infra.database import get_db
from conformidade_platform.services.signed_document_service import SignedDocumentService
from conformidade_platform.services.whatsapp_service import WhatsAppService, get_whatsapp_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.post("/signed-document-email")
async def send_signed_document_email(
    data: SignedDocumentEmailRequest,
    _: User = Depends(require_agencia),
    db: AsyncSession = Depends(get_db),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
):
    """E-mail a signed authorization to the CCA (attachment, or link when too large)."""
    logger.info("Signed document e-mail for demand %s", data.demand_id)
    return await SignedDocumentService(db, whatsapp).send(
        data.cca_user_id, data.cpf, data.matricula, data.pdf_path
    )
