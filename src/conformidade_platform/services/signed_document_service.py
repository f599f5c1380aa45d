"""Deliver a signed authorization PDF to the CCA who requested it.

Small files go as an e-mail attachment; files above ``attachment_max_bytes``
are replaced by a signed download link valid for ``signed_link_ttl_days``.
A WhatsApp heads-up follows, best-effort.
"""

import logging
from datetime import date
from html import escape

from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.config import get_settings
from conformidade_platform.domain.models import User
from conformidade_platform.services import email_service, storage
from conformidade_platform.services.formatting import format_date_br
from conformidade_platform.services.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)


def signed_document_html(cca_name: str, cpf: str | None, matricula: str | None, link: str | None) -> str:
    delivery = (
        f'<p>O arquivo é grande demais para anexar. <a href="{link}">Baixe o PDF assinado aqui</a> '
        f"(link válido por {get_settings().signed_link_ttl_days} dias).</p>"
        if link
        else "<p>O <strong>PDF assinado digitalmente</strong> está anexado a este email.</p>"
    )
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
        "<body style=\"font-family: Arial, sans-serif; line-height: 1.6; color: #333;\">"
        "<div style=\"max-width: 600px; margin: 0 auto; padding: 20px;\">"
        "<h1>🔐 Autorização Assinada Digitalmente</h1>"
        f"<p>Olá <strong>{escape(cca_name)}</strong>,</p>"
        "<p>A autorização foi assinada digitalmente e está pronta para uso.</p>"
        f"<p><strong>📋 CPF:</strong> {escape(cpf or 'N/A')}<br>"
        f"<strong>🏠 Matrícula:</strong> {escape(matricula or 'N/A')}<br>"
        f"<strong>📅 Data da Assinatura:</strong> {format_date_br(date.today())}</p>"
        f"{delivery}"
        "<p style=\"font-size: 12px; color: #666;\">Este é um email automático do Sistema de Gestão.</p>"
        "</div></body></html>"
    )


async def deliver_signed_document(
    *,
    email: str,
    cca_name: str,
    phone: str | None,
    cpf: str | None,
    matricula: str | None,
    pdf_path: str,
    whatsapp: WhatsAppService | None = None,
) -> dict:
    """Send the signed PDF. Takes plain values so it can run detached."""
    settings = get_settings()
    try:
        content = storage.read_file(pdf_path)
    except storage.StorageError as exc:
        logger.error("Signed document %s unavailable: %s", pdf_path, exc)
        return {"success": False, "ok": False, "error": f"Erro ao baixar PDF: {exc}"}

    link = None
    attachments = None
    if len(content) > settings.attachment_max_bytes:
        link = storage.signed_url(pdf_path)
        logger.info("Signed document %s is %d bytes, sending link", pdf_path, len(content))
    else:
        attachments = [
            {
                "filename": f"autorizacao_assinada_{matricula or 'documento'}.pdf",
                "content": content,
                "mime_type": "application/pdf",
            }
        ]

    sent = await email_service.send_email(
        email,
        f"Autorização Assinada - MO {matricula or 'N/A'}",
        signed_document_html(cca_name, cpf, matricula, link),
        attachments=attachments,
    )
    if not sent.get("ok"):
        return {"success": False, "ok": False, "error": sent.get("error")}

    whatsapp_sent = False
    if phone:
        wa = whatsapp or WhatsAppService()
        result = await wa.send_message(
            phone,
            "🔐 *Autorização Assinada*\n\n"
            f"A autorização (MO {matricula or 'N/A'}, CPF {cpf or 'N/A'}) foi assinada "
            "e enviada para o seu e-mail.",
        )
        whatsapp_sent = bool(result.get("ok"))

    return {"success": True, "ok": True, "link_sent": link is not None, "whatsapp_sent": whatsapp_sent}


class SignedDocumentService:
    """Resolve the CCA and deliver the document."""

    def __init__(self, db: AsyncSession, whatsapp: WhatsAppService | None = None):
        self.db = db
        self.whatsapp = whatsapp or WhatsAppService()

    async def recipient(self, cca_user_id: str) -> dict | None:
        cca = await self.db.get(User, cca_user_id)
        if cca is None:
            return None
        email = cca.email_preferencia or cca.email
        if not email:
            return None
        return {"email": email, "cca_name": cca.full_name, "phone": cca.phone}

    async def send(
        self, cca_user_id: str, cpf: str | None, matricula: str | None, pdf_path: str
    ) -> dict:
        recipient = await self.recipient(cca_user_id)
        if recipient is None:
            return {"success": False, "error": "Email do CCA e caminho do PDF são obrigatórios"}
        result = await deliver_signed_document(
            **recipient, cpf=cpf, matricula=matricula, pdf_path=pdf_path, whatsapp=self.whatsapp
        )
        return {"success": True} if result["success"] else {"success": False, "error": result["error"]}
