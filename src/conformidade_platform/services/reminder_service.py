"""WhatsApp reminders for proposals the client has not answered."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.config import get_settings
from conformidade_platform.domain.enums import ProposalStatus
from conformidade_platform.domain.models import SchedulingProposal
from conformidade_platform.services.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)


def reminder_message(cliente_nome: str) -> str:
    return (
        f"Olá, {cliente_nome}!\n"
        "Apenas relembrando que ainda precisamos confirmar o melhor horário para a assinatura do seu contrato.\n"
        'Por favor, responda "1" ou "2" para confirmar.'
    )


async def send_pending_reminders(
    db: AsyncSession,
    whatsapp: WhatsAppService | None = None,
    now: datetime | None = None,
    interval_seconds: float | None = None,
) -> dict:
    """Remind every pending proposal older than ``reminder_after_hours`` once.

    ``lembrete_enviado_em`` is set only when the send succeeded, so failed
    reminders are retried on the next run.
    """
    settings = get_settings()
    whatsapp = whatsapp or WhatsAppService()
    interval = settings.reminder_send_interval_seconds if interval_seconds is None else interval_seconds
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    cutoff = now - timedelta(hours=settings.reminder_after_hours)

    result = await db.execute(
        select(SchedulingProposal).where(
            SchedulingProposal.status == ProposalStatus.PENDENTE.value,
            SchedulingProposal.created_at < cutoff,
            SchedulingProposal.lembrete_enviado_em.is_(None),
        )
    )
    proposals = list(result.scalars().all())
    if not proposals:
        logger.info("No reminders to send")
        return {"success": True, "message": "Nenhum lembrete para enviar", "total": 0, "sucessos": 0, "falhas": 0}

    sucessos = 0
    falhas = 0
    for index, proposal in enumerate(proposals):
        sent = await whatsapp.send_message_to_chat(
            proposal.chat_id or f"{proposal.telefone}@c.us", reminder_message(proposal.cliente_nome)
        )
        if sent.get("ok"):
            proposal.lembrete_enviado_em = now
            await db.commit()
            sucessos += 1
        else:
            logger.warning("Reminder for proposal %s failed: %s", proposal.id, sent.get("error"))
            falhas += 1
        if interval and index < len(proposals) - 1:
            await asyncio.sleep(interval)

    logger.info("Reminders: %d sent, %d failed", sucessos, falhas)
    return {
        "success": True,
        "message": "Lembretes processados",
        "total": len(proposals),
        "sucessos": sucessos,
        "falhas": falhas,
    }
