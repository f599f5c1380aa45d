"""WhatsApp: Green API client, incoming-message webhook, manual send and reminders."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conformidade_platform.app.config import get_settings
from conformidade_platform.app.routes.internal import router as internal_router
from conformidade_platform.app.routes.whatsapp import router
from conformidade_platform.services.reminder_service import send_pending_reminders
from conformidade_platform.services.whatsapp_service import (
    WhatsAppService,
    chat_id_for,
    format_phone,
    get_whatsapp_service,
)

NOW = datetime(2025, 6, 20, 12, 0)


def _incoming(chat_id: str | None, text: str | None, type_webhook: str = "incomingMessageReceived") -> dict:
    return {
        "typeWebhook": type_webhook,
        "senderData": {"chatId": chat_id} if chat_id else {},
        "messageData": {"typeMessage": "textMessage", "textMessageData": {"textMessage": text}},
    }


class TestGreenApiClient:
    @pytest.fixture
    def configured(self, monkeypatch):
        settings = get_settings()
        monkeypatch.setattr(settings, "greenapi_instance_id", "1101")
        monkeypatch.setattr(settings, "greenapi_token", "tok")
        monkeypatch.setattr(settings, "whatsapp_test_phone", "")
        return settings

    def test_phone_formatting(self):
        assert format_phone("(11) 98765-4321") == "5511987654321"
        assert format_phone("5511987654321") == "5511987654321"
        assert chat_id_for("11 98765 4321") == "5511987654321@c.us"

    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "greenapi_instance_id", "")
        result = await WhatsAppService().send_message("11987654321", "Olá")
        assert result == {"ok": False, "error": "greenapi_not_configured"}

    async def test_send_posts_chat_id(self, configured):
        post = AsyncMock(return_value=httpx.Response(200, json={"idMessage": "BAE5"}))
        with patch("httpx.AsyncClient.post", new=post):
            result = await WhatsAppService().send_message("(11) 98765-4321", "Olá")

        assert result == {"ok": True, "chat_id": "5511987654321@c.us", "message_id": "BAE5"}
        url = post.await_args.args[0]
        assert url == "https://api.green-api.com/waInstance1101/sendMessage/tok"
        assert post.await_args.kwargs["json"] == {"chatId": "5511987654321@c.us", "message": "Olá"}

    async def test_test_phone_redirect(self, configured, monkeypatch):
        monkeypatch.setattr(configured, "whatsapp_test_phone", "11900000000")
        post = AsyncMock(return_value=httpx.Response(200, json={"idMessage": "X"}))
        with patch("httpx.AsyncClient.post", new=post):
            result = await WhatsAppService().send_message("11987654321", "Olá")
        assert result["chat_id"] == "5511900000000@c.us"

    async def test_http_error_reported(self, configured):
        post = AsyncMock(return_value=httpx.Response(466, text="quota exceeded"))
        with patch("httpx.AsyncClient.post", new=post):
            result = await WhatsAppService().send_message("11987654321", "Olá")
        assert result["ok"] is False
        assert result["error"] == "http_466"

    async def test_timeout_reported(self, configured):
        post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with patch("httpx.AsyncClient.post", new=post):
            result = await WhatsAppService().send_message("11987654321", "Olá")
        assert result == {"ok": False, "error": "timeout"}


class TestWebhook:
    async def test_option_confirms_proposal(self, build_client, whatsapp_mock, db_session, make_proposal):
        proposal = await make_proposal()

        async with build_client(router, overrides={get_whatsapp_service: lambda: whatsapp_mock}) as client:
            resp = await client.post("/api/whatsapp/webhook", json=_incoming(proposal.chat_id, " 1 "))

        assert resp.status_code == 200
        body = resp.json()
        assert body["confirmed"] is True
        assert body["proposal_id"] == proposal.id
        await db_session.refresh(proposal)
        assert proposal.status == "confirmado"
        assert proposal.opcao_escolhida == 1
        assert "Perfeito, João Souza!" in whatsapp_mock.sent[0][1]

    async def test_other_text_reprompts(self, build_client, whatsapp_mock, db_session, make_proposal):
        proposal = await make_proposal()

        async with build_client(router, overrides={get_whatsapp_service: lambda: whatsapp_mock}) as client:
            resp = await client.post("/api/whatsapp/webhook", json=_incoming(proposal.chat_id, "pode ser sexta?"))

        assert resp.status_code == 200
        assert resp.json()["confirmed"] is False
        await db_session.refresh(proposal)
        assert proposal.status == "pendente"
        assert whatsapp_mock.sent[0][1].startswith("Desculpe, não entendi")

    async def test_latest_pending_proposal_wins(self, build_client, whatsapp_mock, db_session, make_proposal):
        older = await make_proposal(created_at=datetime(2025, 6, 1, 9, 0))
        newer = await make_proposal(created_at=datetime(2025, 6, 2, 9, 0))

        async with build_client(router, overrides={get_whatsapp_service: lambda: whatsapp_mock}) as client:
            resp = await client.post("/api/whatsapp/webhook", json=_incoming(newer.chat_id, "2"))

        assert resp.json()["proposal_id"] == newer.id
        await db_session.refresh(older)
        assert older.status == "pendente"

    async def test_other_webhook_types_ignored(self, build_client, whatsapp_mock):
        async with build_client(router, overrides={get_whatsapp_service: lambda: whatsapp_mock}) as client:
            resp = await client.post(
                "/api/whatsapp/webhook", json=_incoming("5511@c.us", "1", type_webhook="outgoingMessageStatus")
            )
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Webhook ignorado"}
        assert whatsapp_mock.sent == []

    @pytest.mark.parametrize("chat_id, text", [(None, "1"), ("5511999990000@c.us", "   "), ("5511999990000@c.us", None)])
    async def test_incomplete_payload(self, build_client, whatsapp_mock, chat_id, text):
        async with build_client(router, overrides={get_whatsapp_service: lambda: whatsapp_mock}) as client:
            resp = await client.post("/api/whatsapp/webhook", json=_incoming(chat_id, text))
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Dados incompletos"}


class TestManualSend:
    async def test_send(self, build_client, whatsapp_mock, make_user):
        user = await make_user()
        async with build_client(router, user=user, overrides={get_whatsapp_service: lambda: whatsapp_mock}) as client:
            resp = await client.post("/api/whatsapp/send", json={"phone": "11987654321", "message": "Olá"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "chatId": "11987654321", "messageId": "wa-1"}

    async def test_gateway_failure_is_502(self, build_client, whatsapp_mock, make_user):
        user = await make_user()
        whatsapp_mock.send_message = AsyncMock(return_value={"ok": False, "error": "http_500"})
        async with build_client(router, user=user, overrides={get_whatsapp_service: lambda: whatsapp_mock}) as client:
            resp = await client.post("/api/whatsapp/send", json={"phone": "11987654321", "message": "Olá"})
        assert resp.status_code == 502
        assert resp.json() == {"success": False, "error": "http_500"}

    async def test_requires_login(self, build_client, whatsapp_mock):
        async with build_client(router, overrides={get_whatsapp_service: lambda: whatsapp_mock}) as client:
            resp = await client.post("/api/whatsapp/send", json={"phone": "11987654321", "message": "Olá"})
        assert resp.status_code == 401


class TestReminders:
    async def test_nothing_to_send(self, db_session, whatsapp_mock):
        result = await send_pending_reminders(db_session, whatsapp_mock, now=NOW, interval_seconds=0)
        assert result == {
            "success": True,
            "message": "Nenhum lembrete para enviar",
            "total": 0,
            "sucessos": 0,
            "falhas": 0,
        }

    async def test_reminds_old_pending_once(self, db_session, whatsapp_mock, make_proposal):
        old = await make_proposal(created_at=NOW - timedelta(hours=30))
        await make_proposal(created_at=NOW - timedelta(hours=2))
        await make_proposal(created_at=NOW - timedelta(hours=30), status="confirmado")
        await make_proposal(created_at=NOW - timedelta(hours=30), lembrete_enviado_em=NOW - timedelta(hours=1))

        result = await send_pending_reminders(db_session, whatsapp_mock, now=NOW, interval_seconds=0)

        assert result["total"] == 1
        assert result["sucessos"] == 1
        assert whatsapp_mock.sent[0][0] == old.chat_id
        assert "Olá, João Souza!" in whatsapp_mock.sent[0][1]
        await db_session.refresh(old)
        assert old.lembrete_enviado_em == NOW

        again = await send_pending_reminders(db_session, whatsapp_mock, now=NOW, interval_seconds=0)
        assert again["total"] == 0

    async def test_failed_send_is_retried_later(self, db_session, whatsapp_mock, make_proposal):
        proposal = await make_proposal(created_at=NOW - timedelta(hours=30))
        whatsapp_mock.send_message_to_chat = AsyncMock(return_value={"ok": False, "error": "timeout"})

        result = await send_pending_reminders(db_session, whatsapp_mock, now=NOW, interval_seconds=0)

        assert result["falhas"] == 1
        await db_session.refresh(proposal)
        assert proposal.lembrete_enviado_em is None

    async def test_internal_route_requires_token(self, build_client, whatsapp_mock):
        async with build_client(internal_router, overrides={get_whatsapp_service: lambda: whatsapp_mock}) as client:
            denied = await client.post("/api/internal/reminders", headers={"X-Internal-Token": "nope"})
            allowed = await client.post(
                "/api/internal/reminders", headers={"X-Internal-Token": get_settings().internal_token}
            )
        assert denied.status_code == 401
        assert allowed.status_code == 200
        assert allowed.json()["total"] == 0
