"""Conformidade (contract compliance) CRUD."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.routes.auth import get_current_user_dep
from conformidade_platform.domain.enums import UserRole
from conformidade_platform.domain.models import Conformidade, User
from conformidade_platform.domain.schemas import (
    ConformidadeCreate,
    ConformidadeResponse,
    ConformidadeUpdate,
)
from conformidade_platform.infra.database import get_db
from conformidade_platform.services.cpf import clean_cpf, is_valid_cpf

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conformidades", tags=["conformidades"])


async def _get_visible(db: AsyncSession, conformidade_id: str, user: User) -> Conformidade:
    conformidade = await db.get(Conformidade, conformidade_id)
    if conformidade is None:
        raise HTTPException(status_code=404, detail="Conformidade não encontrada")
    if user.role == UserRole.CCA.value and conformidade.cca_user_id != user.id:
        raise HTTPException(status_code=404, detail="Conformidade não encontrada")
    return conformidade


@router.post("", response_model=ConformidadeResponse, status_code=201)
async def create_conformidade(
    data: ConformidadeCreate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    if not is_valid_cpf(data.cpf):
        raise HTTPException(status_code=422, detail="CPF inválido")

    conformidade = Conformidade(
        cca_user_id=user.id,
        codigo_cca=user.codigo_cca or "",
        cpf=clean_cpf(data.cpf),
        valor_financiamento=data.valor_financiamento,
        modalidade=data.modalidade.value,
        modalidade_outro=data.modalidade_outro,
        tipo_contrato=data.tipo_contrato.value,
        comite_credito=data.comite_credito,
        observacoes=data.observacoes,
    )
    db.add(conformidade)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Já existe uma conformidade para este CPF")
    await db.refresh(conformidade)
    logger.info("Conformidade %s created by %s", conformidade.id, user.id)
    return ConformidadeResponse.model_validate(conformidade)


@router.get("", response_model=list[ConformidadeResponse])
async def list_conformidades(
    status: str | None = None,
    cpf: str | None = None,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """Agency staff see every record; CCAs see only their own."""
    query = select(Conformidade).order_by(Conformidade.created_at.desc())
    if user.role == UserRole.CCA.value:
        query = query.where(Conformidade.cca_user_id == user.id)
    if status:
        query = query.where(Conformidade.status == status)
    if cpf:
        query = query.where(Conformidade.cpf == clean_cpf(cpf))
    result = await db.execute(query)
    return [ConformidadeResponse.model_validate(c) for c in result.scalars().all()]


@router.get("/{conformidade_id}", response_model=ConformidadeResponse)
async def get_conformidade(
    conformidade_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return ConformidadeResponse.model_validate(await _get_visible(db, conformidade_id, user))


@router.patch("/{conformidade_id}", response_model=ConformidadeResponse)
async def update_conformidade(
    conformidade_id: str,
    data: ConformidadeUpdate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    conformidade = await _get_visible(db, conformidade_id, user)
    changes = data.model_dump(exclude_unset=True)
    if "entrevista_aprovada" in changes and user.role != UserRole.AGENCIA.value:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    for field, value in changes.items():
        setattr(conformidade, field, value)
    await db.commit()
    await db.refresh(conformidade)
    return ConformidadeResponse.model_validate(conformidade)


@router.delete("/{conformidade_id}", status_code=204)
async def delete_conformidade(
    conformidade_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    conformidade = await _get_visible(db, conformidade_id, user)
    await db.delete(conformidade)
    await db.commit()
