"""Task distribution routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.routes.auth import get_current_user_dep, require_agencia
from conformidade_platform.domain.enums import TaskStatus
from conformidade_platform.domain.models import DistributedTask, User
from conformidade_platform.domain.schemas import DistributedTaskResponse, TaskDistributeRequest
from conformidade_platform.infra.database import get_db
from conformidade_platform.services.errors import NotFoundError
from conformidade_platform.services.status_transitions import InvalidTransitionError
from conformidade_platform.services.task_distribution import TaskDistributionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.post("/distribute")
async def distribute_task(
    data: TaskDistributeRequest,
    _: User = Depends(require_agencia),
    db: AsyncSession = Depends(get_db),
):
    """Send the task to every listed employee.

    Returns 200 when at least one e-mail went out, 403 when every send failed
    because the sender domain is not verified, 500 for other total failures.
    """
    try:
        status_code, body = await TaskDistributionService(db).distribute(
            data.tipo_tarefa, data.referencia_id, data.empregados_ids
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return JSONResponse(status_code=status_code, content=body)


@router.get("/mine", response_model=list[DistributedTaskResponse])
async def my_tasks(
    status: TaskStatus | None = None,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select(DistributedTask)
        .where(DistributedTask.user_id == user.id)
        .order_by(DistributedTask.created_at.desc())
    )
    if status is not None:
        query = query.where(DistributedTask.status == status.value)
    result = await db.execute(query)
    return [DistributedTaskResponse.model_validate(t) for t in result.scalars().all()]


@router.get("/by-reference/{referencia_id}", response_model=list[DistributedTaskResponse])
async def tasks_for_reference(
    referencia_id: str,
    _: User = Depends(require_agencia),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(DistributedTask)
        .where(DistributedTask.referencia_id == referencia_id)
        .order_by(DistributedTask.created_at)
    )
    return [DistributedTaskResponse.model_validate(t) for t in result.scalars().all()]


@router.post("/{task_id}/complete", response_model=DistributedTaskResponse)
async def complete_task(
    task_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        task = await TaskDistributionService(db).complete_manually(task_id, user)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return DistributedTaskResponse.model_validate(task)
