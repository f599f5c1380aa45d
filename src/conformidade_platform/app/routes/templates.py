"""E-mail and WhatsApp template management (agency staff only)."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.routes.auth import require_agencia
from conformidade_platform.domain.models import EmailTemplate, WhatsAppTemplate
from conformidade_platform.domain.schemas import (
    EmailTemplateCreate,
    EmailTemplateResponse,
    EmailTemplateUpdate,
    TemplateCheckResponse,
    TemplatePreviewRequest,
    WhatsAppTemplateCreate,
    WhatsAppTemplateResponse,
    WhatsAppTemplateUpdate,
)
from conformidade_platform.infra.database import get_db
from conformidade_platform.services.templates import (
    SAMPLE_DATA,
    extract_variables,
    list_whatsapp_templates,
    render,
    validate_template,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/templates",
    tags=["templates"],
    dependencies=[Depends(require_agencia)],
)


def _check_texts(*texts: str | None) -> None:
    errors: list[str] = []
    for text in texts:
        if text is None:
            continue
        valid, text_errors = validate_template(text)
        if not valid:
            errors.extend(text_errors)
    if errors:
        raise HTTPException(status_code=422, detail=errors)


async def _commit_unique(db: AsyncSession, template_key: str) -> None:
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail=f"Template {template_key} já existe")


# ---------------------------------------------------------------------------
# Preview / validation
# ---------------------------------------------------------------------------


@router.post("/preview", response_model=TemplateCheckResponse)
async def preview_template(data: TemplatePreviewRequest):
    """Render ``text`` with sample data (overridable) and report its variables."""
    valid, _ = validate_template(data.text)
    variables = {**SAMPLE_DATA, **(data.variables or {})}
    return TemplateCheckResponse(
        valid=valid,
        variables=extract_variables(data.text),
        preview=render(data.text, variables),
    )


@router.post("/validate")
async def check_template(data: TemplatePreviewRequest):
    valid, errors = validate_template(data.text)
    return {"valid": valid, "errors": errors, "variables": extract_variables(data.text)}


# ---------------------------------------------------------------------------
# E-mail templates
# ---------------------------------------------------------------------------


@router.get("/email", response_model=list[EmailTemplateResponse])
async def list_email_templates(module: str | None = None, db: AsyncSession = Depends(get_db)):
    query = select(EmailTemplate).order_by(EmailTemplate.template_key)
    if module:
        query = query.where(EmailTemplate.module == module)
    result = await db.execute(query)
    return [EmailTemplateResponse.model_validate(t) for t in result.scalars().all()]


@router.post("/email", response_model=EmailTemplateResponse, status_code=201)
async def create_email_template(data: EmailTemplateCreate, db: AsyncSession = Depends(get_db)):
    _check_texts(data.subject, data.body)
    template = EmailTemplate(**data.model_dump())
    db.add(template)
    await _commit_unique(db, data.template_key)
    await db.refresh(template)
    return EmailTemplateResponse.model_validate(template)


@router.patch("/email/{template_id}", response_model=EmailTemplateResponse)
async def update_email_template(
    template_id: str, data: EmailTemplateUpdate, db: AsyncSession = Depends(get_db)
):
    template = await db.get(EmailTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template não encontrado")
    _check_texts(data.subject, data.body)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(template, field, value)
    await db.commit()
    await db.refresh(template)
    return EmailTemplateResponse.model_validate(template)


@router.delete("/email/{template_id}", status_code=204)
async def delete_email_template(template_id: str, db: AsyncSession = Depends(get_db)):
    template = await db.get(EmailTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template não encontrado")
    await db.delete(template)
    await db.commit()


# ---------------------------------------------------------------------------
# WhatsApp templates
# ---------------------------------------------------------------------------


@router.get("/whatsapp", response_model=list[WhatsAppTemplateResponse])
async def list_whatsapp(demand_type: str | None = None, db: AsyncSession = Depends(get_db)):
    templates = await list_whatsapp_templates(db, demand_type)
    return [WhatsAppTemplateResponse.model_validate(t) for t in templates]


@router.post("/whatsapp", response_model=WhatsAppTemplateResponse, status_code=201)
async def create_whatsapp_template(data: WhatsAppTemplateCreate, db: AsyncSession = Depends(get_db)):
    _check_texts(data.message)
    template = WhatsAppTemplate(**data.model_dump())
    db.add(template)
    await _commit_unique(db, data.template_key)
    await db.refresh(template)
    return WhatsAppTemplateResponse.model_validate(template)


@router.patch("/whatsapp/{template_id}", response_model=WhatsAppTemplateResponse)
async def update_whatsapp_template(
    template_id: str, data: WhatsAppTemplateUpdate, db: AsyncSession = Depends(get_db)
):
    template = await db.get(WhatsAppTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template não encontrado")
    _check_texts(data.message)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(template, field, value)
    await db.commit()
    await db.refresh(template)
    return WhatsAppTemplateResponse.model_validate(template)


@router.delete("/whatsapp/{template_id}", status_code=204)
async def delete_whatsapp_template(template_id: str, db: AsyncSession = Depends(get_db)):
    template = await db.get(WhatsAppTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template não encontrado")
    await db.delete(template)
    await db.commit()
