"""SQLAlchemy ORM models for the conformidade platform.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)

Column names keep the agency's Portuguese vocabulary (cpf, data_hora,
referencia_id, ...) so exports and templates line up with what users see.
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from conformidade_platform.infra.database import Base


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Platform user: agency staff (agencia) or correspondent agent (cca)."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    codigo_cca = Column(String(50), nullable=True)
    email_preferencia = Column(String(255), nullable=True)  # where task e-mails go
    role = Column(String(20), nullable=False, default="cca")  # agencia, cca
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    last_login_at = Column(DateTime, nullable=True)


# ---------------------------------------------------------------------------
# Conformidade / scheduling
# ---------------------------------------------------------------------------


class Conformidade(Base):
    """Contract compliance case for one borrower (CPF)."""

    __tablename__ = "conformidades"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    cca_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    codigo_cca = Column(String(50), nullable=False, default="")
    cpf = Column(String(14), unique=True, nullable=False, index=True)
    valor_financiamento = Column(Numeric(14, 2), nullable=False)
    modalidade = Column(String(10), nullable=False)  # SBPE, MCMV, OUTRO
    modalidade_outro = Column(String(255), nullable=True)
    tipo_contrato = Column(String(20), nullable=False, default="individual")
    comite_credito = Column(Boolean, default=False)
    observacoes = Column(Text, nullable=True)
    status = Column(String(50), nullable=True, default="Em análise")
    data_agendamento = Column(Date, nullable=True)
    entrevista_id = Column(String(36), nullable=True)
    entrevista_aprovada = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class SchedulingProposal(Base):
    """Two candidate dates offered to a client for an interview or a signature.

    Transitions pendente -> confirmado exactly once; after that the live
    object is the Appointment created at confirmation.
    """

    __tablename__ = "scheduling_proposals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = Column(String(20), nullable=False, index=True)  # entrevista, assinatura
    conformidade_id = Column(String(36), ForeignKey("conformidades.id"), nullable=True)
    cca_user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    codigo_cca = Column(String(50), nullable=True)
    cliente_nome = Column(String(255), nullable=False)
    telefone = Column(String(30), nullable=False)
    chat_id = Column(String(60), nullable=True, index=True)
    data_opcao_1 = Column(Date, nullable=False)
    data_opcao_2 = Column(Date, nullable=False)
    horario_inicio = Column(String(5), nullable=False)  # HH:MM
    horario_fim = Column(String(5), nullable=False)  # HH:MM
    tipo_contrato = Column(String(20), nullable=True)
    modalidade_financiamento = Column(String(20), nullable=True)
    comite_credito = Column(Boolean, default=False)
    nome_empresa = Column(String(255), nullable=True)
    agencia = Column(String(100), nullable=True)
    endereco_agencia = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="pendente")
    data_confirmada = Column(Date, nullable=True)
    opcao_escolhida = Column(Integer, nullable=True)  # 1, 2 or NULL for a free date
    horario_confirmado = Column(String(5), nullable=True)
    lembrete_enviado_em = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    conformidade = relationship("Conformidade", lazy="selectin")


class Appointment(Base):
    """Confirmed calendar entry (agendamento) for an interview or signature."""

    __tablename__ = "agendamentos"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tipo = Column(String(20), nullable=False, index=True)  # entrevista, assinatura
    cca_user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    conformidade_id = Column(String(36), ForeignKey("conformidades.id"), nullable=True)
    proposta_id = Column(String(36), ForeignKey("scheduling_proposals.id"), nullable=True)
    cpf = Column(String(14), nullable=True, index=True)
    cliente_nome = Column(String(255), nullable=True)
    telefone_cliente = Column(String(30), nullable=True)
    tipo_contrato = Column(String(20), nullable=True)
    modalidade_financiamento = Column(String(20), nullable=True)
    comite_credito = Column(Boolean, default=False)
    # ISO-8601 with the agency's fixed -03:00 offset, e.g. 2025-06-10T16:59:00-03:00
    data_hora = Column(String(32), nullable=False)
    status = Column(String(50), nullable=True)
    observacoes = Column(Text, nullable=True)
    dossie_cliente_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


# ---------------------------------------------------------------------------
# Demands / task distribution
# ---------------------------------------------------------------------------


class Demand(Base):
    """Request opened by a CCA for the agency (authorizations, cancellations...)."""

    __tablename__ = "demands"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    cca_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    codigo_cca = Column(String(50), nullable=False, default="")
    type = Column(String(40), nullable=False)
    cpf = Column(String(14), nullable=True)
    matricula = Column(String(100), nullable=True)
    cartorio = Column(String(255), nullable=True)
    numero_pis = Column(String(20), nullable=True)
    description = Column(Text, nullable=True)
    # Stored-file references (storage-relative paths)
    carta_solicitacao_pdf = Column(String(500), nullable=True)
    ficha_cadastro_pdf = Column(String(500), nullable=True)
    matricula_imovel_pdf = Column(String(500), nullable=True)
    mo_autorizacao_pdf = Column(String(500), nullable=True)
    mo_autorizacao_assinado_pdf = Column(String(500), nullable=True)
    response_text = Column(Text, nullable=True)
    status = Column(String(30), nullable=False, default="pendente")
    assinatura_data = Column(DateTime, nullable=True)
    concluded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class DistributedTask(Base):
    """One employee's copy of a task (distribuicao_tarefas).

    Transitions em_andamento -> concluida at most once.
    """

    __tablename__ = "distribuicao_tarefas"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tipo_tarefa = Column(String(20), nullable=False)  # demanda, assinatura, comite
    referencia_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="em_andamento")
    reply_to = Column(String(255), nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    concluida_em = Column(DateTime, nullable=True)
    concluida_por_email = Column(Boolean, default=False)
    inbound_email_id = Column(String(255), nullable=True)
    inbound_from = Column(String(255), nullable=True)
    matched_keyword = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class TaskEmailEvent(Base):
    """Audit trail for every inbound task-reply e-mail, whatever the outcome."""

    __tablename__ = "task_email_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    distribuicao_id = Column(String(36), nullable=True, index=True)
    event_type = Column(String(50), nullable=False)
    email_id = Column(String(255), nullable=True)
    from_addr = Column(String(255), nullable=True)
    to_addr = Column(Text, nullable=True)
    subject = Column(Text, nullable=True)
    body_preview = Column(Text, nullable=True)
    action_taken = Column(String(100), nullable=False)
    raw_payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=func.now())


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class EmailTemplate(Base):
    """E-mail template with {{variable}} placeholders."""

    __tablename__ = "email_templates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    template_key = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    module = Column(String(50), nullable=False, default="tarefas")
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    available_variables = Column(JSON, default=dict)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class WhatsAppTemplate(Base):
    """WhatsApp message template with {{variable}} placeholders."""

    __tablename__ = "whatsapp_templates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    template_key = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    demand_type = Column(String(40), nullable=True)  # a DemandType value or "all"
    available_variables = Column(JSON, default=dict)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


# ---------------------------------------------------------------------------
# AI
# ---------------------------------------------------------------------------


class ExtractedDocument(Base):
    """Result of an AI document extraction (documentos_extraidos)."""

    __tablename__ = "documentos_extraidos"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tipo_documento = Column(String(40), nullable=False)
    dados_extraidos = Column(JSON, nullable=False)
    texto_gerado = Column(Text, nullable=False)
    arquivo_url = Column(String(500), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=func.now())


class AgentLog(Base):
    """Activity log for every AI agent call."""

    __tablename__ = "agent_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agent_name = Column(String(100), nullable=False)
    action = Column(String(50), nullable=False)
    input_summary = Column(Text)
    output_summary = Column(Text)
    tokens_used = Column(Integer, default=0)
    latency_ms = Column(Integer, default=0)
    created_at = Column(DateTime, default=func.now())
