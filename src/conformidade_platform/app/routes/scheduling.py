"""Scheduling routes: proposals, confirmations, appointments, interview decisions."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.routes.auth import get_current_user_dep, require_agencia
from conformidade_platform.domain.enums import MeetingKind, UserRole
from conformidade_platform.domain.models import Appointment, SchedulingProposal, User
from conformidade_platform.domain.schemas import (
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatusUpdate,
    ConfirmationResponse,
    InterviewDecision,
    ProposalConfirm,
    ProposalCreate,
    ProposalResponse,
)
from conformidade_platform.infra.database import get_db
from conformidade_platform.services.errors import NotFoundError
from conformidade_platform.services.notification_dispatcher import NotificationDispatcher, get_dispatcher
from conformidade_platform.services.scheduling_service import (
    InterviewNotApprovedError,
    SchedulingError,
    SchedulingService,
    visible_to,
)
from conformidade_platform.services.status_transitions import InvalidTransitionError
from conformidade_platform.services.whatsapp_service import WhatsAppService, get_whatsapp_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scheduling", tags=["scheduling"])


def get_scheduling_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_dispatcher),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
) -> SchedulingService:
    return SchedulingService(db, notifier=notifier, whatsapp=whatsapp)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (InvalidTransitionError, InterviewNotApprovedError)):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------


@router.post("/proposals", response_model=ProposalResponse, status_code=201)
async def create_proposal(
    data: ProposalCreate,
    user: User = Depends(get_current_user_dep),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        proposal = await service.propose_meeting(data, user)
    except (NotFoundError, SchedulingError) as exc:
        raise _http_error(exc)
    return ProposalResponse.model_validate(proposal)


@router.get("/proposals", response_model=list[ProposalResponse])
async def list_proposals(
    kind: MeetingKind | None = None,
    status: str | None = None,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    query = select(SchedulingProposal).order_by(SchedulingProposal.created_at.desc())
    if user.role == UserRole.CCA.value:
        query = query.where(SchedulingProposal.cca_user_id == user.id)
    if kind is not None:
        query = query.where(SchedulingProposal.kind == kind.value)
    if status:
        query = query.where(SchedulingProposal.status == status)
    result = await db.execute(query)
    return [ProposalResponse.model_validate(p) for p in result.scalars().all()]


@router.post("/proposals/{proposal_id}/confirm", response_model=ConfirmationResponse)
async def confirm_proposal(
    proposal_id: str,
    data: ProposalConfirm,
    user: User = Depends(get_current_user_dep),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        proposal, appointment = await service.confirm_meeting(
            proposal_id, data.chosen_date, data.chosen_option, data.chosen_time, user=user
        )
    except (NotFoundError, InvalidTransitionError, SchedulingError) as exc:
        raise _http_error(exc)
    return ConfirmationResponse(
        proposal=ProposalResponse.model_validate(proposal),
        appointment=AppointmentResponse.model_validate(appointment),
    )


@router.delete("/proposals/{proposal_id}", status_code=204)
async def delete_proposal(
    proposal_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    proposal = await db.get(SchedulingProposal, proposal_id)
    if proposal is None or not visible_to(proposal, user):
        raise HTTPException(status_code=404, detail="Proposta não encontrada")
    await db.delete(proposal)
    await db.commit()


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------


@router.get("/appointments", response_model=list[AppointmentResponse])
async def list_appointments(
    tipo: MeetingKind | None = None,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    query = select(Appointment).order_by(Appointment.data_hora)
    if user.role == UserRole.CCA.value:
        query = query.where(Appointment.cca_user_id == user.id)
    if tipo is not None:
        query = query.where(Appointment.tipo == tipo.value)
    result = await db.execute(query)
    return [AppointmentResponse.model_validate(a) for a in result.scalars().all()]


@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: str,
    data: AppointmentReschedule,
    user: User = Depends(get_current_user_dep),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        appointment = await service.reschedule_appointment(
            appointment_id,
            data.new_date,
            data.new_time,
            notify_client=data.notify_client,
            telefone_cliente=data.telefone_cliente,
            user=user,
        )
    except NotFoundError as exc:
        raise _http_error(exc)
    return AppointmentResponse.model_validate(appointment)


@router.patch("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: str,
    data: AppointmentStatusUpdate,
    _: User = Depends(require_agencia),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        appointment = await service.update_status(appointment_id, data.status, data.observacoes)
    except NotFoundError as exc:
        raise _http_error(exc)
    return AppointmentResponse.model_validate(appointment)


@router.post("/appointments/{appointment_id}/decision", response_model=AppointmentResponse)
async def decide_interview(
    appointment_id: str,
    data: InterviewDecision,
    _: User = Depends(require_agencia),
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        appointment = await service.decide_interview(
            appointment_id, data.approved, motivo=data.motivo, observacoes=data.observacoes
        )
    except (NotFoundError, SchedulingError) as exc:
        raise _http_error(exc)
    return AppointmentResponse.model_validate(appointment)


@router.delete("/appointments/{appointment_id}", status_code=204)
async def delete_appointment(
    appointment_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    appointment = await db.get(Appointment, appointment_id)
    if appointment is None or not visible_to(appointment, user):
        raise HTTPException(status_code=404, detail="Agendamento não encontrado")
    await db.delete(appointment)
    await db.commit()
