"""SendGrid e-mail service for task distribution and notifications.

Uses asyncio.to_thread to wrap the synchronous SendGrid client. Every public
function returns a result dict instead of raising, so callers can collect
per-recipient outcomes.
"""

import asyncio
import base64
import logging

import sendgrid
from sendgrid.helpers.mail import (
    Attachment,
    Disposition,
    Email,
    FileContent,
    FileName,
    FileType,
    HtmlContent,
    Mail,
    ReplyTo,
    To,
)

from conformidade_platform.app.config import get_settings

logger = logging.getLogger(__name__)

DOMAIN_NOT_VERIFIED = "domain_not_verified"
EMAIL_SEND_FAILED = "email_send_failed"

_NOT_VERIFIED_MARKERS = ("not verified", "verified sender identity", "domain is not verified")


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    return sendgrid.SendGridAPIClient(api_key=get_settings().sendgrid_api_key)


def classify_send_error(detail: str | None) -> str:
    """Tell a sender-domain verification failure apart from everything else."""
    text = (detail or "").lower()
    if any(marker in text for marker in _NOT_VERIFIED_MARKERS):
        return DOMAIN_NOT_VERIFIED
    return EMAIL_SEND_FAILED


def _error_detail(exc: Exception) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    return f"{exc} {body or ''}".strip()


def _send_mail(mail: Mail) -> dict:
    """Synchronous send via SendGrid."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code in (200, 201, 202):
        headers = response.headers or {}
        return {"ok": True, "status": response.status_code, "message_id": headers.get("X-Message-Id")}
    body = response.body.decode("utf-8", errors="replace") if isinstance(response.body, bytes) else str(response.body)
    logger.error("SendGrid returned status %s: %s", response.status_code, body[:300])
    return {"ok": False, "status": response.status_code, "error": classify_send_error(body), "detail": body}


def build_mail(
    to: str,
    subject: str,
    html: str,
    reply_to: str | None = None,
    attachments: list[dict] | None = None,
) -> Mail:
    """Assemble a SendGrid Mail.

    ``attachments`` items are ``{"filename", "content": bytes, "mime_type"}``.
    """
    settings = get_settings()
    mail = Mail(
        from_email=Email(settings.email_from, settings.email_from_name),
        to_emails=To(to),
        subject=subject,
        html_content=HtmlContent(html),
    )
    if reply_to:
        mail.reply_to = ReplyTo(reply_to)
    for item in attachments or []:
        mail.add_attachment(
            Attachment(
                FileContent(base64.b64encode(item["content"]).decode("ascii")),
                FileName(item["filename"]),
                FileType(item.get("mime_type", "application/pdf")),
                Disposition("attachment"),
            )
        )
    return mail


# ---------------------------------------------------------------------------
# Public async API
# ---------------------------------------------------------------------------


async def send_email(
    to: str,
    subject: str,
    html: str,
    reply_to: str | None = None,
    attachments: list[dict] | None = None,
) -> dict:
    """Send one e-mail.

    Returns:
        ``{"ok": True, "message_id"}`` on success, otherwise
        ``{"ok": False, "error": "domain_not_verified" | "email_send_failed" | ...}``.
    """
    if not get_settings().sendgrid_api_key:
        logger.warning("SENDGRID_API_KEY not set, skipping e-mail to %s", to)
        return {"ok": False, "error": "sendgrid_not_configured"}

    try:
        mail = build_mail(to, subject, html, reply_to=reply_to, attachments=attachments)
        result = await asyncio.to_thread(_send_mail, mail)
    except Exception as exc:
        detail = _error_detail(exc)
        logger.exception("Failed to send e-mail to %s", to)
        return {
            "ok": False,
            "error": classify_send_error(detail),
            "status": getattr(exc, "status_code", None),
            "detail": detail,
        }

    if result["ok"]:
        logger.info("E-mail sent to %s: %s", to, subject)
    return result
