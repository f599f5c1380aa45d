"""Interview and signature scheduling.

A proposal offers the client two candidate dates and one time window. It is
confirmed exactly once, either by the agent (any time inside the window, on
one of the two dates or a free third date) or by the client answering "1"
or "2" on WhatsApp. Agent confirmation also creates the calendar entry
(``agendamentos``) that every later step works on: reschedules, interview
approval, signature status.

Date-times are stored as ISO strings with the agency's fixed -03:00 offset.
"""

import logging
from datetime import date, datetime
from html import escape

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.config import get_settings
from conformidade_platform.domain.enums import AppointmentStatus, MeetingKind, ProposalStatus, UserRole
from conformidade_platform.domain.models import Appointment, Conformidade, SchedulingProposal, User
from conformidade_platform.domain.schemas import ProposalCreate
from conformidade_platform.services import email_service
from conformidade_platform.services.cpf import clean_cpf
from conformidade_platform.services.errors import NotFoundError
from conformidade_platform.services.formatting import format_date_br, format_date_long, format_datetime_br
from conformidade_platform.services.notification_dispatcher import NotificationDispatcher, dispatcher
from conformidade_platform.services.status_transitions import validate_transition
from conformidade_platform.services.templates import render_whatsapp
from conformidade_platform.services.whatsapp_service import WhatsAppService, chat_id_for

logger = logging.getLogger(__name__)

AGENCY_UTC_OFFSET = "-03:00"

_KIND_LABELS = {
    MeetingKind.ENTREVISTA.value: "entrevista",
    MeetingKind.ASSINATURA.value: "assinatura do contrato",
}

_CONFIRMED_STATUS = {
    MeetingKind.ENTREVISTA.value: AppointmentStatus.ENTREVISTA_AGENDADA.value,
    MeetingKind.ASSINATURA.value: AppointmentStatus.ASSINATURA_AGENDADA.value,
}


class SchedulingError(Exception):
    """Base class for scheduling rule violations."""


class TimeOutsideWindowError(SchedulingError):
    def __init__(self, chosen_time: str, start: str, end: str):
        self.chosen_time = chosen_time
        super().__init__(f"Horário {chosen_time} fora da janela {start}-{end}")


class OptionMismatchError(SchedulingError):
    """The chosen option number does not match the chosen date."""


class InterviewNotApprovedError(SchedulingError):
    """A signature was proposed for a conformidade whose interview is not approved."""


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def is_within_window(chosen_time: str, start: str, end: str) -> bool:
    """Minute-level check, both ends inclusive."""
    return _minutes(start) <= _minutes(chosen_time) <= _minutes(end)


def build_data_hora(day: date, hhmm: str) -> str:
    """``2025-06-10`` + ``16:59`` -> ``2025-06-10T16:59:00-03:00``"""
    return f"{day.isoformat()}T{hhmm[:5]}:00{AGENCY_UTC_OFFSET}"


def parse_data_hora(value: str) -> datetime:
    return datetime.fromisoformat(value)


def visible_to(record, user: User | None) -> bool:
    """CCA users only reach their own records; agency staff and internal callers reach all."""
    if user is None or user.role != UserRole.CCA.value:
        return True
    return record.cca_user_id == user.id


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def invite_message(proposal: SchedulingProposal) -> str:
    return (
        f"Olá, {proposal.cliente_nome}! 👋\n"
        f"Aqui é o assistente da {proposal.nome_empresa} - Agência {proposal.agencia}.\n"
        f"Precisamos agendar a {_KIND_LABELS[proposal.kind]}.\n\n"
        "Temos as seguintes opções disponíveis:\n"
        f"📅 Opção 1: {format_date_long(proposal.data_opcao_1)}\n"
        f"📅 Opção 2: {format_date_long(proposal.data_opcao_2)}\n"
        f"⏰ Horário disponível: entre {proposal.horario_inicio} e {proposal.horario_fim}\n"
        f"📍 Local: {proposal.endereco_agencia}\n\n"
        'Por gentileza, responda com "1" ou "2" para confirmar a opção desejada.'
    )


def reply_confirmation_message(proposal: SchedulingProposal, chosen: date) -> str:
    return (
        f"Perfeito, {proposal.cliente_nome}! ✅\n"
        f"Sua {_KIND_LABELS[proposal.kind]} foi agendada para {format_date_long(chosen)} "
        f"entre {proposal.horario_inicio} e {proposal.horario_fim}.\n"
        f"📍 Local: {proposal.endereco_agencia}\n"
        f"Aguardamos você na Agência {proposal.agencia}. Até breve!"
    )


REPROMPT_MESSAGE = (
    "Desculpe, não entendi sua resposta.\n"
    'Por favor, envie "1" ou "2" para escolher uma das opções disponíveis.'
)


def interview_result_email(approved: bool, cca_name: str, cpf: str, observacoes: str | None, motivo: str | None):
    """Subject and HTML body of the interview result sent to the CCA."""
    if approved:
        subject = "✅ Entrevista Aprovada - Contrato Liberado para Assinatura"
        body = (
            f"<h2>Olá {escape(cca_name)},</h2>"
            f"<p>Temos uma ótima notícia! A entrevista do cliente <strong>CPF: {escape(cpf)}</strong> foi aprovada.</p>"
            "<p><strong>Próximos passos:</strong></p>"
            "<ul><li>O contrato está liberado para assinatura</li>"
            "<li>Todos os documentos foram verificados</li>"
            "<li>Você pode prosseguir com o agendamento da assinatura</li></ul>"
            + (f"<p><strong>Observações:</strong> {escape(observacoes)}</p>" if observacoes else "")
            + "<p>Atenciosamente,<br>Equipe de Conformidade</p>"
        )
    else:
        subject = "❌ Entrevista Reprovada"
        body = (
            f"<h2>Olá {escape(cca_name)},</h2>"
            f"<p>Infelizmente, a entrevista do cliente <strong>CPF: {escape(cpf)}</strong> foi reprovada.</p>"
            + (f"<p><strong>Motivo:</strong> {escape(motivo)}</p>" if motivo else "")
            + "<p>Por favor, entre em contato com o setor de conformidade para mais informações.</p>"
            "<p>Atenciosamente,<br>Equipe de Conformidade</p>"
        )
    return subject, body


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class SchedulingService:
    """Proposal, confirmation, reschedule and interview-decision operations."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationDispatcher | None = None,
        whatsapp: WhatsAppService | None = None,
    ):
        self.db = db
        self.notifier = notifier or dispatcher
        self.whatsapp = whatsapp or WhatsAppService()
        self.settings = get_settings()

    async def _get_proposal(self, proposal_id: str, user: User | None = None) -> SchedulingProposal:
        proposal = await self.db.get(SchedulingProposal, proposal_id)
        if proposal is None or not visible_to(proposal, user):
            raise NotFoundError("SchedulingProposal", proposal_id)
        return proposal

    async def _get_appointment(self, appointment_id: str, user: User | None = None) -> Appointment:
        appointment = await self.db.get(Appointment, appointment_id)
        if appointment is None or not visible_to(appointment, user):
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    # -- propose -------------------------------------------------------

    async def propose_meeting(self, data: ProposalCreate, user: User | None = None) -> SchedulingProposal:
        """Create a pending proposal and, if requested, send the WhatsApp invite.

        Signature proposals linked to a conformidade require its interview
        to be approved.
        """
        conformidade = None
        if data.conformidade_id:
            conformidade = await self.db.get(Conformidade, data.conformidade_id)
            if conformidade is None or not visible_to(conformidade, user):
                raise NotFoundError("Conformidade", data.conformidade_id)
            if data.kind == MeetingKind.ASSINATURA and not conformidade.entrevista_aprovada:
                raise InterviewNotApprovedError(
                    "A entrevista precisa estar aprovada antes de agendar a assinatura"
                )

        telefone = "".join(ch for ch in data.telefone if ch.isdigit())
        proposal = SchedulingProposal(
            kind=data.kind.value,
            conformidade_id=data.conformidade_id,
            cca_user_id=conformidade.cca_user_id if conformidade else (user.id if user else None),
            codigo_cca=conformidade.codigo_cca if conformidade else (user.codigo_cca if user else None),
            cliente_nome=data.cliente_nome,
            telefone=telefone,
            chat_id=chat_id_for(telefone),
            data_opcao_1=data.data_opcao_1,
            data_opcao_2=data.data_opcao_2,
            horario_inicio=data.horario_inicio,
            horario_fim=data.horario_fim,
            tipo_contrato=(
                data.tipo_contrato.value if data.tipo_contrato
                else (conformidade.tipo_contrato if conformidade else None)
            ),
            modalidade_financiamento=(
                data.modalidade_financiamento or (conformidade.modalidade if conformidade else None)
            ),
            comite_credito=data.comite_credito or bool(conformidade and conformidade.comite_credito),
            nome_empresa=self.settings.company_name,
            agencia=self.settings.agency_name,
            endereco_agencia=self.settings.agency_address,
            status=ProposalStatus.PENDENTE.value,
        )
        self.db.add(proposal)
        await self.db.commit()
        await self.db.refresh(proposal)
        logger.info("Proposal %s (%s) created for %s", proposal.id, proposal.kind, proposal.chat_id)

        if data.send_invite:
            message = await render_whatsapp(
                self.db,
                f"convite_{proposal.kind}",
                {
                    "nome_cliente": proposal.cliente_nome,
                    "data_opcao_1": format_date_long(proposal.data_opcao_1),
                    "data_opcao_2": format_date_long(proposal.data_opcao_2),
                    "horario_inicio": proposal.horario_inicio,
                    "horario_fim": proposal.horario_fim,
                    "endereco_agencia": proposal.endereco_agencia,
                    "nome_empresa": proposal.nome_empresa,
                },
                invite_message(proposal),
            )
            self.notifier.spawn(
                self.whatsapp.send_message(proposal.telefone, message),
                f"whatsapp:invite:{proposal.id}",
            )
        return proposal

    # -- confirm -------------------------------------------------------

    async def confirm_meeting(
        self,
        proposal_id: str,
        chosen_date: date,
        chosen_option: int | None,
        chosen_time: str,
        user: User | None = None,
    ) -> tuple[SchedulingProposal, Appointment]:
        """Confirm a proposal and create its appointment in one transaction.

        Every check runs before the first write, so a rejected confirmation
        leaves both tables untouched.
        """
        proposal = await self._get_proposal(proposal_id, user)
        validate_transition(ProposalStatus(proposal.status), ProposalStatus.CONFIRMADO)

        if not is_within_window(chosen_time, proposal.horario_inicio, proposal.horario_fim):
            raise TimeOutsideWindowError(chosen_time, proposal.horario_inicio, proposal.horario_fim)
        if chosen_option is not None:
            expected = proposal.data_opcao_1 if chosen_option == 1 else proposal.data_opcao_2
            if chosen_date != expected:
                raise OptionMismatchError(
                    f"Opção {chosen_option} corresponde a {expected.isoformat()}, não {chosen_date.isoformat()}"
                )

        conformidade = None
        if proposal.conformidade_id:
            conformidade = await self.db.get(Conformidade, proposal.conformidade_id)

        modalidade = proposal.modalidade_financiamento or (conformidade.modalidade if conformidade else None)
        escolha = f"opção {chosen_option}" if chosen_option else "data alternativa"
        observacoes = (
            f"Agendado via proposta ({escolha}) - Cliente: {proposal.cliente_nome}, "
            f"Telefone: {proposal.telefone}"
        )

        try:
            proposal.status = ProposalStatus.CONFIRMADO.value
            proposal.data_confirmada = chosen_date
            proposal.opcao_escolhida = chosen_option
            proposal.horario_confirmado = chosen_time

            appointment = Appointment(
                tipo=proposal.kind,
                cca_user_id=proposal.cca_user_id,
                conformidade_id=proposal.conformidade_id,
                proposta_id=proposal.id,
                cpf=conformidade.cpf if conformidade else None,
                cliente_nome=proposal.cliente_nome,
                telefone_cliente=proposal.telefone,
                tipo_contrato=proposal.tipo_contrato or (conformidade.tipo_contrato if conformidade else None),
                modalidade_financiamento=modalidade.lower() if modalidade else None,
                comite_credito=bool(proposal.comite_credito),
                data_hora=build_data_hora(chosen_date, chosen_time),
                status=_CONFIRMED_STATUS[proposal.kind],
                observacoes=observacoes,
            )
            self.db.add(appointment)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Proposal %s confirmed -> appointment %s at %s", proposal.id, appointment.id, appointment.data_hora)
        return proposal, appointment

    # -- client reply via WhatsApp ---------------------------------------

    async def apply_client_reply(self, chat_id: str, text: str) -> dict:
        """Handle a client's WhatsApp answer to the most recent pending proposal."""
        result = await self.db.execute(
            select(SchedulingProposal)
            .where(
                SchedulingProposal.chat_id == chat_id,
                SchedulingProposal.status == ProposalStatus.PENDENTE.value,
            )
            .order_by(SchedulingProposal.created_at.desc())
            .limit(1)
        )
        proposal = result.scalar_one_or_none()
        if proposal is None:
            logger.info("No pending proposal for %s", chat_id)
            return {"success": True, "message": "Nenhum agendamento pendente"}

        confirmed = False
        if text in ("1", "2"):
            option = int(text)
            chosen = proposal.data_opcao_1 if option == 1 else proposal.data_opcao_2
            try:
                validate_transition(ProposalStatus(proposal.status), ProposalStatus.CONFIRMADO)
                proposal.status = ProposalStatus.CONFIRMADO.value
                proposal.data_confirmada = chosen
                proposal.opcao_escolhida = option
                if proposal.conformidade_id:
                    conformidade = await self.db.get(Conformidade, proposal.conformidade_id)
                    if conformidade is not None:
                        conformidade.status = AppointmentStatus.ENTREVISTA_AGENDADA.value
                        conformidade.data_agendamento = chosen
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
            confirmed = True
            reply = reply_confirmation_message(proposal, chosen)
            logger.info("Proposal %s confirmed by client (option %d)", proposal.id, option)
        else:
            reply = REPROMPT_MESSAGE

        sent = await self.whatsapp.send_message_to_chat(chat_id, reply)
        return {
            "success": True,
            "message": "Webhook processado com sucesso",
            "proposal_id": proposal.id,
            "confirmed": confirmed,
            "reply_sent": bool(sent.get("ok")),
        }

    # -- reschedule ----------------------------------------------------

    async def reschedule_appointment(
        self,
        appointment_id: str,
        new_date: date,
        new_time: str,
        notify_client: bool = False,
        telefone_cliente: str | None = None,
        user: User | None = None,
    ) -> Appointment:
        """Move an appointment and append an audit line to its notes."""
        appointment = await self._get_appointment(appointment_id, user)

        new_data_hora = build_data_hora(new_date, new_time)
        line = (
            f"Reagendado de {format_datetime_br(parse_data_hora(appointment.data_hora))} "
            f"para {format_datetime_br(parse_data_hora(new_data_hora))}"
        )
        appointment.observacoes = f"{appointment.observacoes}\n{line}" if appointment.observacoes else line
        appointment.data_hora = new_data_hora
        if telefone_cliente:
            appointment.telefone_cliente = telefone_cliente
        await self.db.commit()
        logger.info("Appointment %s rescheduled to %s", appointment.id, new_data_hora)

        phone = telefone_cliente or appointment.telefone_cliente
        if notify_client and phone:
            new_dt = parse_data_hora(new_data_hora)
            label = "assinatura de contrato" if appointment.tipo == MeetingKind.ASSINATURA.value else "entrevista"
            fallback = (
                f"Olá {appointment.cliente_nome or ''}! Sua {label} foi reagendada para "
                f"{format_datetime_br(new_dt)}. Por favor, confirme sua presença."
            )
            message = await render_whatsapp(
                self.db,
                f"reagendamento_{appointment.tipo}",
                {
                    "nome_cliente": appointment.cliente_nome or "",
                    "nova_data": format_date_br(new_dt),
                    "novo_horario": new_dt.strftime("%H:%M"),
                    "endereco_agencia": self.settings.agency_address,
                    "cpf": appointment.cpf or "",
                },
                fallback,
            )
            self.notifier.spawn(
                self.whatsapp.send_message(phone, message),
                f"whatsapp:reschedule:{appointment.id}",
            )
        return appointment

    async def update_status(self, appointment_id: str, status: str, observacoes: str | None = None) -> Appointment:
        appointment = await self._get_appointment(appointment_id)
        appointment.status = status
        if observacoes is not None:
            appointment.observacoes = observacoes
        await self.db.commit()
        return appointment

    # -- interview decision --------------------------------------------

    async def decide_interview(
        self,
        appointment_id: str,
        approved: bool,
        motivo: str | None = None,
        observacoes: str | None = None,
    ) -> Appointment:
        """Approve or reject an interview.

        Approval marks the CCA's conformidades for the same CPF as
        interview-approved. The CCA is e-mailed the result afterwards.
        """
        appointment = await self._get_appointment(appointment_id)
        if appointment.tipo != MeetingKind.ENTREVISTA.value:
            raise SchedulingError("Somente entrevistas podem ser aprovadas ou reprovadas")

        try:
            appointment.status = (
                AppointmentStatus.APROVADO.value if approved else AppointmentStatus.REPROVADO.value
            )
            appointment.observacoes = observacoes or motivo or None

            if approved and appointment.cpf:
                cpfs = {appointment.cpf, clean_cpf(appointment.cpf)}
                result = await self.db.execute(
                    select(Conformidade).where(
                        or_(*(Conformidade.cpf == c for c in cpfs)),
                        Conformidade.cca_user_id == appointment.cca_user_id,
                    )
                )
                for conformidade in result.scalars().all():
                    conformidade.entrevista_aprovada = True
                    conformidade.entrevista_id = appointment.id
                    if observacoes:
                        conformidade.observacoes = observacoes
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Interview %s %s", appointment.id, "approved" if approved else "rejected")

        cca = await self.db.get(User, appointment.cca_user_id) if appointment.cca_user_id else None
        if cca is not None and cca.email_preferencia:
            subject, body = interview_result_email(
                approved, cca.full_name, appointment.cpf or "", observacoes, motivo
            )
            self.notifier.spawn(
                email_service.send_email(cca.email_preferencia, subject, body),
                f"email:interview-result:{appointment.id}",
            )
        return appointment
