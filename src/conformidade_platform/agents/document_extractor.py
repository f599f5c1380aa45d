"""Document Extractor: registry data from marriage certificates and property records.

The file goes to Gemini inline (PDF or image) with a function declaration
the model is forced to call; the call's arguments are the extracted fields.
The standard legal sentence is then built from them by plain interpolation.
"""

import logging

from pydantic import BaseModel, Field

from conformidade_platform.agents.base import AgentResult, BaseAgent, file_part
from conformidade_platform.agents.prompts.documents import (
    CERTIDAO_SYSTEM_PROMPT,
    CERTIDAO_USER_PROMPT,
    MATRICULA_SYSTEM_PROMPT,
    MATRICULA_USER_PROMPT,
)
from conformidade_platform.app.config import get_settings
from conformidade_platform.domain.enums import DocumentType
from conformidade_platform.infra.gemini_client import function_declaration

logger = logging.getLogger(__name__)


class CertidaoData(BaseModel):
    livro: str = Field(description="Número do livro")
    folha: str = Field(description="Número da folha")
    numero: str | None = Field(default=None, description="Número do registro")
    cartorio: str = Field(description="Nome completo do cartório")
    cidade: str = Field(description="Cidade do cartório")


class MatriculaData(BaseModel):
    tipo_imovel: str = Field(
        description="Tipo do imóvel (ex: apartamento, casa, terreno, lote, sala comercial)"
    )
    endereco_imovel: str = Field(description="Endereço completo do imóvel")


def certidao_text(data: dict) -> str:
    numero = f", sob nº {data['numero']}" if data.get("numero") else ""
    return (
        "Casado sob o regime de comunhão parcial de bens, conforme certidão de casamento "
        f"lavrada no Livro {data.get('livro', '')}, Folha {data.get('folha', '')}{numero}, "
        f"do {data.get('cartorio', '')} de {data.get('cidade', '')}."
    )


def matricula_text(data: dict) -> str:
    return (
        f"Imóvel tipo {data.get('tipo_imovel', '')}, localizado em {data.get('endereco_imovel', '')}, "
        "dispensando sua inteira descrição nos termos do art. 2º da Lei nº 7.433/1985."
    )


# document type -> (function name, description, args model, system prompt, user prompt,
#                   default mime type, sentence builder)
_DOCUMENTS = {
    DocumentType.CERTIDAO_CASAMENTO: (
        "extrair_certidao",
        "Extrai dados estruturados de uma certidão de casamento",
        CertidaoData,
        CERTIDAO_SYSTEM_PROMPT,
        CERTIDAO_USER_PROMPT,
        "application/pdf",
        certidao_text,
    ),
    DocumentType.MATRICULA_IMOVEL: (
        "extrair_matricula",
        "Extrai dados estruturados de uma matrícula de imóvel",
        MatriculaData,
        MATRICULA_SYSTEM_PROMPT,
        MATRICULA_USER_PROMPT,
        "image/png",
        matricula_text,
    ),
}

_MIME_ALIASES = {
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
}


def resolve_mime_type(file_type: str | None, default: str) -> str:
    """Map an upload's ``fileType`` ("pdf", "image/png", ...) to a MIME type."""
    if not file_type:
        return default
    value = file_type.strip().lower()
    if "/" in value:
        return value
    return _MIME_ALIASES.get(value.lstrip("."), default)


class DocumentExtractor(BaseAgent):
    def __init__(self):
        super().__init__(
            agent_name="document_extractor",
            model_name=get_settings().extraction_model_name,
            temperature=0.0,
        )

    async def extract(
        self, document_type: DocumentType, content_base64: str, file_type: str | None = None
    ) -> AgentResult:
        """Extract the fields of ``document_type`` from a base64 file.

        On success ``data`` is ``{"dados_extraidos": {...}, "texto_gerado": "..."}``.
        """
        name, description, model, system_prompt, user_prompt, default_mime, builder = _DOCUMENTS[
            document_type
        ]
        mime_type = resolve_mime_type(file_type, default_mime)
        logger.info("[%s] Extracting %s (%s)", self.agent_name, document_type.value, mime_type)

        try:
            parts = [user_prompt, file_part(content_base64, mime_type)]
        except ValueError as exc:
            return AgentResult.failure(f"Arquivo base64 inválido: {exc}")

        result = await self.call_function(
            parts,
            function_declaration(name, description, model.model_json_schema()),
            system_instruction=system_prompt,
        )
        if not result.ok:
            return result

        dados = {key: value for key, value in result.data.items() if value not in (None, "")}
        return AgentResult.success(
            {"dados_extraidos": dados, "texto_gerado": builder(dados)},
            tokens_used=result.tokens_used,
            latency_ms=result.latency_ms,
        )
