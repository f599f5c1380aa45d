"""AI document routes: certificate/registration extraction and note rewriting."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.agents.base import AgentResult
from conformidade_platform.agents.document_extractor import DocumentExtractor
from conformidade_platform.agents.text_improver import TextImprover
from conformidade_platform.app.routes.auth import get_current_user_dep
from conformidade_platform.domain.enums import DocumentType
from conformidade_platform.domain.models import ExtractedDocument, User
from conformidade_platform.domain.schemas import ExtractDocumentRequest, ImproveTextRequest
from conformidade_platform.infra.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["documents"])

RATE_LIMIT_MESSAGE = "Limite de requisições excedido. Tente novamente em alguns instantes."
NO_CREDITS_MESSAGE = "Créditos insuficientes. Por favor, adicione créditos ao seu workspace."


def get_document_extractor() -> DocumentExtractor:
    return DocumentExtractor()


def get_text_improver() -> TextImprover:
    return TextImprover()


def _failure_response(result: AgentResult, **extra) -> JSONResponse:
    if result.status_code == 429:
        return JSONResponse(status_code=429, content={**extra, "error": RATE_LIMIT_MESSAGE})
    if result.status_code == 402:
        return JSONResponse(status_code=402, content={**extra, "error": NO_CREDITS_MESSAGE})
    return JSONResponse(status_code=500, content={**extra, "error": result.error or "Erro desconhecido"})


async def _extract(
    document_type: DocumentType,
    data: ExtractDocumentRequest,
    user: User,
    db: AsyncSession,
    extractor: DocumentExtractor,
):
    if not data.pdf_base64:
        return JSONResponse(status_code=400, content={"error": "PDF base64 é obrigatório"})

    logger.info("Extracting %s for %s (%d base64 chars)", document_type.value, user.id, len(data.pdf_base64))
    result = await extractor.extract(document_type, data.pdf_base64, data.file_type)
    if not result.ok:
        return _failure_response(result, status="error")

    db.add(
        ExtractedDocument(
            tipo_documento=document_type.value,
            dados_extraidos=result.data["dados_extraidos"],
            texto_gerado=result.data["texto_gerado"],
            user_id=user.id,
        )
    )
    await db.commit()
    return {
        "status": "ok",
        "texto_gerado": result.data["texto_gerado"],
        "dados_extraidos": result.data["dados_extraidos"],
    }


@router.post("/extract/certidao")
async def extract_certidao(
    data: ExtractDocumentRequest,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
    extractor: DocumentExtractor = Depends(get_document_extractor),
):
    """Marriage certificate -> registry data and the standard marital-status sentence."""
    return await _extract(DocumentType.CERTIDAO_CASAMENTO, data, user, db, extractor)


@router.post("/extract/matricula")
async def extract_matricula(
    data: ExtractDocumentRequest,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
    extractor: DocumentExtractor = Depends(get_document_extractor),
):
    """Property registration -> property type/address and the standard sentence."""
    return await _extract(DocumentType.MATRICULA_IMOVEL, data, user, db, extractor)


@router.get("/extractions")
async def list_extractions(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(ExtractedDocument)
        .where(ExtractedDocument.user_id == user.id)
        .order_by(ExtractedDocument.created_at.desc())
        .limit(50)
    )
    return [
        {
            "id": doc.id,
            "tipo_documento": doc.tipo_documento,
            "dados_extraidos": doc.dados_extraidos,
            "texto_gerado": doc.texto_gerado,
            "created_at": doc.created_at.isoformat() if doc.created_at else None,
        }
        for doc in result.scalars().all()
    ]


@router.post("/improve-text")
async def improve_text(
    data: ImproveTextRequest,
    _: User = Depends(get_current_user_dep),
    improver: TextImprover = Depends(get_text_improver),
):
    if not data.text or not data.text.strip():
        return JSONResponse(status_code=400, content={"error": "Texto não pode estar vazio"})
    result = await improver.improve(data.text)
    if not result.ok:
        return _failure_response(result)
    return {"improvedText": result.data}
