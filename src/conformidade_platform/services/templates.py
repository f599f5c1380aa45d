"""Template rendering for e-mail and WhatsApp messages.

Templates use ``{{variable}}`` placeholders. Rendering replaces every
occurrence of each known key and leaves unknown placeholders untouched, so a
half-filled template is visible to whoever reads the message.
"""

import logging
import re

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.domain.models import Conformidade, EmailTemplate, User, WhatsAppTemplate
from conformidade_platform.services.formatting import format_brl, format_date_br

logger = logging.getLogger(__name__)

VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")
_LONE_BRACE = re.compile(r"(?<!\{)\{(?!\{)|(?<!\})\}(?!\})")

SAMPLE_DATA: dict[str, str] = {
    "cpf": "123.456.789-09",
    "valor_financiamento": "R$ 350.000,00",
    "modalidade": "SBPE",
    "codigo_cca": "CCA001",
    "nome_cca": "Maria Silva",
    "telefone_cca": "(11) 98765-4321",
    "data_envio": "10/06/2025",
    "nome_cliente": "João Souza",
    "nova_data": "12/06/2025",
    "novo_horario": "14:30",
    "endereco_agencia": "Avenida Barao Do Rio Branco, 2340",
    "tipo_demanda": "Autoriza Reavaliação",
    "matricula": "12345",
    "descricao": "Descrição da demanda",
    "status": "concluida",
    "resposta": "Demanda atendida",
}


def render(template: str, data: dict[str, object]) -> str:
    """Replace every ``{{key}}`` for each key in ``data``.

    ``None`` renders as an empty string. Placeholders whose key is not in
    ``data`` are left as they are.
    """
    result = template
    for key, value in data.items():
        result = result.replace("{{" + key + "}}", "" if value is None else str(value))
    return result


def extract_variables(template: str) -> list[str]:
    """Distinct placeholder names, in order of first appearance."""
    seen: dict[str, None] = {}
    for match in VARIABLE_PATTERN.finditer(template):
        seen.setdefault(match.group(1), None)
    return list(seen)


def validate_template(template: str) -> tuple[bool, list[str]]:
    """Check that placeholders use balanced double braces."""
    errors: list[str] = []
    if template.count("{{") != template.count("}}"):
        errors.append("Variáveis não fechadas corretamente. Use {{variavel}}")
    if _LONE_BRACE.search(template):
        errors.append("Sintaxe de variável inválida. Use {{variavel}} com duas chaves")
    return not errors, errors


def conformidade_variables(conformidade: Conformidade, cca: User | None) -> dict[str, str]:
    """Variables available to conformidade-related templates."""
    modalidade = conformidade.modalidade or ""
    if modalidade == "OUTRO":
        modalidade = conformidade.modalidade_outro or ""
    return {
        "cpf": conformidade.cpf or "",
        "valor_financiamento": format_brl(conformidade.valor_financiamento),
        "modalidade": modalidade,
        "codigo_cca": conformidade.codigo_cca or "",
        "nome_cca": (cca.full_name if cca else "") or "",
        "data_envio": format_date_br(conformidade.created_at),
        "telefone_cca": (cca.phone if cca else "") or "",
    }


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_email_template(db: AsyncSession, template_key: str) -> EmailTemplate | None:
    result = await db.execute(select(EmailTemplate).where(EmailTemplate.template_key == template_key))
    return result.scalar_one_or_none()


async def get_whatsapp_template(db: AsyncSession, template_key: str) -> WhatsAppTemplate | None:
    result = await db.execute(
        select(WhatsAppTemplate).where(WhatsAppTemplate.template_key == template_key)
    )
    return result.scalar_one_or_none()


async def list_whatsapp_templates(db: AsyncSession, demand_type: str | None = None) -> list[WhatsAppTemplate]:
    """Templates for a demand type include the ones marked ``all``."""
    stmt = select(WhatsAppTemplate).order_by(WhatsAppTemplate.created_at.desc())
    if demand_type:
        stmt = stmt.where(
            or_(WhatsAppTemplate.demand_type == demand_type, WhatsAppTemplate.demand_type == "all")
        )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def render_whatsapp(
    db: AsyncSession, template_key: str, data: dict[str, object], fallback: str
) -> str:
    """Render a stored WhatsApp template, or ``fallback`` when none exists."""
    template = await get_whatsapp_template(db, template_key)
    if template is None:
        logger.debug("WhatsApp template %s not found, using fallback", template_key)
        return fallback
    return render(template.message, data)
