"""WhatsApp messaging via the Green API gateway.

Endpoints used:
- POST /waInstance{id}/sendMessage/{token}: send a text message to a chat id

Chat ids are ``55<digits>@c.us``. When ``whatsapp_test_phone`` is set every
message is redirected to it, which keeps staging from messaging clients.
"""

import logging
import re

import httpx

from conformidade_platform.app.config import get_settings

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def format_phone(phone: str) -> str:
    """Digits only, with the 55 country code prepended when missing."""
    digits = _NON_DIGITS.sub("", phone or "")
    if not digits.startswith("55"):
        digits = "55" + digits
    return digits


def chat_id_for(phone: str) -> str:
    return f"{format_phone(phone)}@c.us"


class WhatsAppService:
    """Send WhatsApp messages through Green API."""

    def __init__(self):
        self.settings = get_settings()

    @property
    def _configured(self) -> bool:
        return self.settings.greenapi_configured

    def _send_url(self) -> str:
        base = self.settings.greenapi_base_url.rstrip("/")
        return (
            f"{base}/waInstance{self.settings.greenapi_instance_id}"
            f"/sendMessage/{self.settings.greenapi_token}"
        )

    async def send_message(self, phone: str, message: str) -> dict:
        """Send ``message`` to ``phone``.

        Returns ``{"ok": True, "chat_id", "message_id"}`` or
        ``{"ok": False, "error", ...}``; never raises.
        """
        if not self._configured:
            logger.warning("Green API not configured, message not sent to %s", phone)
            return {"ok": False, "error": "greenapi_not_configured"}

        target = self.settings.whatsapp_test_phone or phone
        if not _NON_DIGITS.sub("", target or ""):
            return {"ok": False, "error": "invalid_phone"}
        chat_id = chat_id_for(target)

        logger.info("Green API send: chat=%s msg_len=%d", chat_id, len(message))
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                resp = await client.post(
                    self._send_url(),
                    json={"chatId": chat_id, "message": message},
                )
        except httpx.TimeoutException:
            logger.error("Green API timed out for %s", chat_id)
            return {"ok": False, "error": "timeout"}
        except httpx.HTTPError as exc:
            logger.error("Green API transport error: %s", exc)
            return {"ok": False, "error": str(exc)}

        if not 200 <= resp.status_code < 300:
            logger.error("Green API send failed (%d): %s", resp.status_code, resp.text[:300])
            return {"ok": False, "error": f"http_{resp.status_code}", "status": resp.status_code}

        try:
            data = resp.json()
        except ValueError:
            data = {}
        logger.info("WhatsApp sent to %s (id=%s)", chat_id, data.get("idMessage"))
        return {"ok": True, "chat_id": chat_id, "message_id": data.get("idMessage")}

    async def send_message_to_chat(self, chat_id: str, message: str) -> dict:
        """Reply to a chat id received from the webhook (already ``...@c.us``)."""
        return await self.send_message(chat_id.split("@", 1)[0], message)


def get_whatsapp_service() -> WhatsAppService:
    """FastAPI dependency; tests override it with a mock."""
    return WhatsAppService()
