"""WhatsApp routes: manual send and the Green API incoming-message webhook."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.routes.auth import get_current_user_dep
from conformidade_platform.domain.models import User
from conformidade_platform.domain.schemas import SendWhatsAppRequest
from conformidade_platform.infra.database import get_db
from conformidade_platform.services.scheduling_service import SchedulingService
from conformidade_platform.services.whatsapp_service import WhatsAppService, get_whatsapp_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])


@router.post("/send")
async def send_whatsapp(
    data: SendWhatsAppRequest,
    _: User = Depends(get_current_user_dep),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
):
    result = await whatsapp.send_message(data.phone, data.message)
    if not result.get("ok"):
        return JSONResponse(status_code=502, content={"success": False, "error": result.get("error")})
    return {"success": True, "chatId": result.get("chat_id"), "messageId": result.get("message_id")}


@router.post("/webhook")
async def whatsapp_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
):
    """Client answers "1" or "2" to a scheduling invite."""
    payload = await request.json()
    if payload.get("typeWebhook") != "incomingMessageReceived":
        logger.info("WhatsApp webhook type %s ignored", payload.get("typeWebhook"))
        return {"success": True, "message": "Webhook ignorado"}

    message_data = payload.get("messageData") or {}
    chat_id = (payload.get("senderData") or {}).get("chatId") or message_data.get("chatId")
    text = ((message_data.get("textMessageData") or {}).get("textMessage") or "").strip()
    if not chat_id or not text:
        return JSONResponse(status_code=400, content={"success": False, "error": "Dados incompletos"})

    try:
        return await SchedulingService(db, whatsapp=whatsapp).apply_client_reply(chat_id, text)
    except Exception as exc:
        logger.exception("WhatsApp webhook failed for %s", chat_id)
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})
