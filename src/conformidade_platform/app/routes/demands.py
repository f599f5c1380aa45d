"""Demand routes: CCA requests, agency responses, signed authorization upload."""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.routes.auth import get_current_user_dep, require_agencia
from conformidade_platform.domain.enums import DemandStatus, DemandType, UserRole
from conformidade_platform.domain.models import Demand, User
from conformidade_platform.domain.schemas import DemandCreate, DemandRespond, DemandResponse
from conformidade_platform.infra.database import get_db
from conformidade_platform.services.demand_service import DemandService
from conformidade_platform.services.errors import NotFoundError
from conformidade_platform.services.notification_dispatcher import NotificationDispatcher, get_dispatcher
from conformidade_platform.services.status_transitions import InvalidTransitionError
from conformidade_platform.services.storage import StorageError
from conformidade_platform.services.whatsapp_service import WhatsAppService, get_whatsapp_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/demands", tags=["demands"])


def get_demand_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_dispatcher),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
) -> DemandService:
    return DemandService(db, notifier=notifier, whatsapp=whatsapp)


@router.post("", response_model=DemandResponse, status_code=201)
async def create_demand(
    data: DemandCreate,
    user: User = Depends(get_current_user_dep),
    service: DemandService = Depends(get_demand_service),
):
    demand = await service.create(data, user)
    return DemandResponse.model_validate(demand)


@router.get("", response_model=list[DemandResponse])
async def list_demands(
    status: DemandStatus | None = None,
    type: DemandType | None = None,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    query = select(Demand).order_by(Demand.created_at.desc())
    if user.role == UserRole.CCA.value:
        query = query.where(Demand.cca_user_id == user.id)
    if status is not None:
        query = query.where(Demand.status == status.value)
    if type is not None:
        query = query.where(Demand.type == type.value)
    result = await db.execute(query)
    return [DemandResponse.model_validate(d) for d in result.scalars().all()]


@router.get("/{demand_id}", response_model=DemandResponse)
async def get_demand(
    demand_id: str,
    user: User = Depends(get_current_user_dep),
    service: DemandService = Depends(get_demand_service),
):
    try:
        demand = await service.get(demand_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    if user.role == UserRole.CCA.value and demand.cca_user_id != user.id:
        raise HTTPException(status_code=404, detail=f"Demand {demand_id} not found")
    return DemandResponse.model_validate(demand)


@router.post("/{demand_id}/respond", response_model=DemandResponse)
async def respond_demand(
    demand_id: str,
    data: DemandRespond,
    _: User = Depends(require_agencia),
    service: DemandService = Depends(get_demand_service),
):
    try:
        demand = await service.respond(demand_id, data.status, data.response_text)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return DemandResponse.model_validate(demand)


@router.post("/{demand_id}/signed-authorization", response_model=DemandResponse)
async def upload_signed_authorization(
    demand_id: str,
    file: UploadFile = File(...),
    _: User = Depends(require_agencia),
    service: DemandService = Depends(get_demand_service),
):
    """Store the signed MO authorization PDF and send it to the CCA."""
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Arquivo vazio")
    try:
        demand = await service.attach_signed_authorization(demand_id, file.filename or "autorizacao.pdf", content)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except StorageError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return DemandResponse.model_validate(demand)
