"""Inbound e-mail replies that close distributed tasks.

Each task e-mail goes out with ``Reply-To: tarefa-<task id>@<inbound domain>``.
The provider posts an ``email.received`` event here; the reply text (above
any quoted history) is searched for a confirmation keyword and, on a match,
the task is completed. Demand tasks also close the parent demand and every
sibling task for that demand.

Every delivery leaves a ``task_email_events`` row, whatever the outcome.
Ignored outcomes are reported as results, not errors, so the provider never
retries them.
"""

import logging
import re
import unicodedata
from datetime import datetime, timezone

import httpx
from bs4 import BeautifulSoup
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.config import get_settings
from conformidade_platform.domain.enums import (
    DEMAND_TYPE_LABELS,
    DemandStatus,
    DemandType,
    TaskEmailAction,
    TaskKind,
    TaskStatus,
)
from conformidade_platform.domain.models import Demand, DistributedTask, TaskEmailEvent, User
from conformidade_platform.services.status_transitions import validate_transition
from conformidade_platform.services.templates import render_whatsapp
from conformidade_platform.services.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)

TASK_ADDRESS_PATTERN = re.compile(r"tarefa-([0-9a-zA-Z_-]+)@")

CONFIRMATION_KEYWORDS = (
    "ok",
    "feito",
    "feita",
    "concluido",
    "concluida",
    "done",
    "finalizado",
    "finalizada",
    "conclui",
    "concluindo",
)

_BLOCKQUOTE = re.compile(r"<blockquote", re.IGNORECASE)
_REPLY_HEADER = re.compile(
    r"^\s*(em\s.+escreveu|on\s.+wrote)\s*:?\s*$"
    r"|^-{2,}\s*(original message|mensagem original)\s*-{2,}"
    r"|^\s*_{10,}\s*$"
    r"|^\s*\*?(de|from)\s*:\*?(\s|$)",
    re.IGNORECASE,
)
_NON_WORD = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")

PREVIEW_LENGTH = 500


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def normalize_text(text: str) -> str:
    """Lower-case, drop diacritics and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _SPACES.sub(" ", _NON_WORD.sub(" ", stripped)).strip()


def match_keyword(text: str) -> str | None:
    """Return the first confirmation keyword present as a whole word."""
    words = set(normalize_text(text).split(" "))
    for keyword in CONFIRMATION_KEYWORDS:
        if keyword in words:
            return keyword
    return None


def html_to_text(html: str) -> str:
    """Visible text of ``html`` above the first ``<blockquote>`` or reply header."""
    if not html:
        return ""
    quote = _BLOCKQUOTE.search(html)
    if quote:
        html = html[: quote.start()]
    soup = BeautifulSoup(html, "html.parser")
    for node in soup(["script", "style", "head"]):
        node.decompose()
    for node in soup.select("div.gmail_quote, div.yahoo_quoted"):
        node.decompose()
    return _SPACES.sub(" ", strip_quoted_text(soup.get_text("\n"))).strip()


def strip_quoted_text(text: str) -> str:
    """Drop ``>`` quoted lines and everything after a reply header.

    Reply headers cover Gmail-style "Em ... escreveu:" lines, "Original
    Message" separators and Outlook's underscore rule or ``De:``/``From:`` block.
    """
    kept: list[str] = []
    for line in (text or "").splitlines():
        if _REPLY_HEADER.match(line):
            break
        if line.lstrip().startswith(">"):
            continue
        kept.append(line)
    return "\n".join(kept).strip()


def _address_of(entry) -> str:
    if isinstance(entry, dict):
        return entry.get("email") or entry.get("address") or ""
    return str(entry or "")


def find_task_address(recipients) -> tuple[str | None, str | None]:
    """Return ``(task_id, address)`` for the first ``tarefa-<id>@`` recipient."""
    if isinstance(recipients, (str, dict)):
        recipients = [recipients]
    for entry in recipients or []:
        address = _address_of(entry)
        match = TASK_ADDRESS_PATTERN.search(address)
        if match:
            return match.group(1), address
    return None, None


# ---------------------------------------------------------------------------
# Provider API
# ---------------------------------------------------------------------------


async def fetch_received_email(email_id: str) -> dict | None:
    """Fetch the full received message (text and html) from the provider.

    Returns None when the API is not configured or the call fails; callers
    then match against the subject only.
    """
    settings = get_settings()
    if not settings.inbound_api_key or not email_id:
        return None
    url = f"{settings.inbound_api_url.rstrip('/')}/{email_id}"
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            resp = await client.get(
                url,
                headers={"Authorization": f"Bearer {settings.inbound_api_key}"},
            )
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("[inbound-email] could not fetch %s: %s", email_id, exc)
        return None
    return data.get("data") or data


# ---------------------------------------------------------------------------
# Webhook processing
# ---------------------------------------------------------------------------


class InboundEmailService:
    """Apply one inbound e-mail event to the distributed tasks."""

    def __init__(self, db: AsyncSession, whatsapp: WhatsAppService | None = None):
        self.db = db
        self.whatsapp = whatsapp or WhatsAppService()

    async def process(self, payload: dict) -> dict:
        if payload.get("type") != "email.received":
            logger.info("[inbound-email] ignoring event type %s", payload.get("type"))
            return {"success": True, "action": "ignored", "reason": "Not email.received event"}

        data = payload.get("data") or payload
        email_id = data.get("email_id") or data.get("id")
        recipients = data.get("to") or []
        from_addr = _address_of(data.get("from"))
        subject = data.get("subject") or ""

        task_id, target_address = find_task_address(recipients)
        if not task_id:
            to_joined = ", ".join(_address_of(r) for r in (recipients if isinstance(recipients, list) else [recipients]))
            await self._record(
                None, "email_received_invalid", TaskEmailAction.IGNORED_NO_ID.value,
                email_id, from_addr, to_joined, subject, None, payload,
            )
            await self.db.commit()
            return self._ignored(TaskEmailAction.IGNORED_NO_ID, "No valid distribuicao_id found in to address")

        task = await self.db.get(DistributedTask, task_id)
        if task is None:
            await self._record(
                None, "email_received", TaskEmailAction.IGNORED_NOT_FOUND.value,
                email_id, from_addr, target_address, subject, None, payload,
            )
            await self.db.commit()
            return self._ignored(TaskEmailAction.IGNORED_NOT_FOUND, "Distribuição não encontrada", task_id)

        if task.status == TaskStatus.CONCLUIDA.value:
            await self._record(
                task.id, "email_received", TaskEmailAction.IGNORED_ALREADY_COMPLETED.value,
                email_id, from_addr, target_address, subject, None, payload,
            )
            await self.db.commit()
            return self._ignored(TaskEmailAction.IGNORED_ALREADY_COMPLETED, "Tarefa já concluída", task.id)

        content = data if (data.get("text") or data.get("html")) else await fetch_received_email(email_id)
        if content:
            reply_text = strip_quoted_text(content.get("text") or "")
            reply_html = html_to_text(content.get("html") or "")
            match_text = " ".join(part for part in (subject, reply_text, reply_html) if part)
            preview = (reply_text or reply_html)[:PREVIEW_LENGTH]
        else:
            match_text = subject
            preview = f"[Subject only] {subject}"[:PREVIEW_LENGTH]

        keyword = match_keyword(match_text)
        logger.info("[inbound-email] task=%s keyword=%s", task.id, keyword)

        if keyword is None:
            await self._record(
                task.id, "email_received", TaskEmailAction.IGNORED_NO_KEYWORD.value,
                email_id, from_addr, target_address, subject, preview, payload,
            )
            await self.db.commit()
            return self._ignored(
                TaskEmailAction.IGNORED_NO_KEYWORD, "Nenhuma palavra-chave de confirmação encontrada", task.id
            )

        demand = await self._complete(task, keyword, email_id, from_addr, target_address, subject, preview, payload)

        whatsapp_sent = False
        if demand is not None:
            whatsapp_sent = await self._notify_requester(demand)

        return {
            "success": True,
            "action": "completed",
            "distribuicao_id": task.id,
            "matched_keyword": keyword,
            "demand_updated": demand is not None,
            "demand_id": demand.id if demand is not None else None,
            "whatsapp_sent": whatsapp_sent,
        }

    async def _complete(
        self, task, keyword, email_id, from_addr, target_address, subject, preview, payload
    ) -> Demand | None:
        """Close the task (and demand + siblings) in one transaction."""
        now = datetime.now(timezone.utc)
        demand = None
        try:
            validate_transition(TaskStatus(task.status), TaskStatus.CONCLUIDA)
            task.status = TaskStatus.CONCLUIDA.value
            task.concluida_em = now
            task.concluida_por_email = True
            task.inbound_email_id = email_id
            task.inbound_from = from_addr
            task.matched_keyword = keyword

            if task.tipo_tarefa == TaskKind.DEMANDA.value:
                demand = await self.db.get(Demand, task.referencia_id)
                if demand is not None and demand.status != DemandStatus.CONCLUIDA.value:
                    demand.status = DemandStatus.CONCLUIDA.value
                    demand.concluded_at = now
                await self.db.execute(
                    update(DistributedTask)
                    .where(
                        DistributedTask.referencia_id == task.referencia_id,
                        DistributedTask.tipo_tarefa == TaskKind.DEMANDA.value,
                        DistributedTask.status == TaskStatus.EM_ANDAMENTO.value,
                        DistributedTask.id != task.id,
                    )
                    .values(status=TaskStatus.CONCLUIDA.value, concluida_em=now)
                )

            await self._record(
                task.id, "email_received", f"{TaskEmailAction.COMPLETED.value}:{keyword}",
                email_id, from_addr, target_address, subject, preview, payload,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "[inbound-email] task %s completed via '%s' (demand=%s)",
            task.id, keyword, demand.id if demand is not None else None,
        )
        return demand

    async def _notify_requester(self, demand: Demand) -> bool:
        """Tell the CCA who opened the demand that it was closed. Best-effort."""
        result = await self.db.execute(select(User).where(User.id == demand.cca_user_id))
        cca = result.scalar_one_or_none()
        if cca is None or not cca.phone:
            logger.info("[inbound-email] demand %s requester has no phone", demand.id)
            return False

        try:
            label = DEMAND_TYPE_LABELS.get(DemandType(demand.type), demand.type)
        except ValueError:
            label = demand.type
        variables = {
            "nome_cca": cca.full_name,
            "tipo_demanda": label,
            "cpf": demand.cpf or "",
            "matricula": demand.matricula or "",
        }
        fallback = (
            "✅ *Demanda Concluída*\n\n"
            f"Olá, {cca.full_name}! Sua demanda de {label}"
            f"{f' (CPF: {demand.cpf})' if demand.cpf else ''} foi concluída pela agência."
        )
        try:
            message = await render_whatsapp(self.db, "demanda_concluida", variables, fallback)
            sent = await self.whatsapp.send_message(cca.phone, message)
        except Exception as exc:
            logger.warning("[inbound-email] WhatsApp to requester failed: %s", exc)
            return False
        return bool(sent.get("ok"))

    async def _record(
        self, task_id, event_type, action, email_id, from_addr, to_addr, subject, preview, payload
    ) -> None:
        self.db.add(
            TaskEmailEvent(
                distribuicao_id=task_id,
                event_type=event_type,
                email_id=email_id,
                from_addr=from_addr,
                to_addr=to_addr,
                subject=subject,
                body_preview=preview,
                action_taken=action,
                raw_payload=payload,
            )
        )

    @staticmethod
    def _ignored(action: TaskEmailAction, reason: str, task_id: str | None = None) -> dict:
        body = {"success": True, "action": action.value, "reason": reason}
        if task_id:
            body["distribuicao_id"] = task_id
        return body
