"""Pydantic v2 schemas for API request/response validation."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from conformidade_platform.domain.enums import (
    DemandStatus,
    DemandType,
    MeetingKind,
    ModalidadeFinanciamento,
    TaskKind,
    TipoContrato,
    UserRole,
)

_HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Schema for creating a new user."""

    email: str
    password: str
    full_name: str
    role: UserRole = UserRole.CCA
    phone: str | None = None
    codigo_cca: str | None = None
    email_preferencia: str | None = None


class UserLogin(BaseModel):
    """Schema for user login."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Schema for user API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str
    role: str
    phone: str | None = None
    codigo_cca: str | None = None
    email_preferencia: str | None = None
    is_active: bool


class UserUpdate(BaseModel):
    """Schema for updating a user profile."""

    full_name: str | None = None
    phone: str | None = None
    codigo_cca: str | None = None
    email_preferencia: str | None = None


class TokenResponse(BaseModel):
    """Schema for JWT token responses."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ---------------------------------------------------------------------------
# Conformidade
# ---------------------------------------------------------------------------


class ConformidadeCreate(BaseModel):
    cpf: str
    valor_financiamento: Decimal = Field(gt=0)
    modalidade: ModalidadeFinanciamento
    modalidade_outro: str | None = None
    tipo_contrato: TipoContrato = TipoContrato.INDIVIDUAL
    comite_credito: bool = False
    observacoes: str | None = None

    @model_validator(mode="after")
    def _outro_requires_text(self):
        if self.modalidade == ModalidadeFinanciamento.OUTRO and not (self.modalidade_outro or "").strip():
            raise ValueError("modalidade_outro is required when modalidade is OUTRO")
        return self


class ConformidadeUpdate(BaseModel):
    status: str | None = None
    observacoes: str | None = None
    comite_credito: bool | None = None
    entrevista_aprovada: bool | None = None
    data_agendamento: date | None = None


class ConformidadeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cca_user_id: str
    codigo_cca: str
    cpf: str
    valor_financiamento: Decimal
    modalidade: str
    modalidade_outro: str | None = None
    tipo_contrato: str
    comite_credito: bool
    observacoes: str | None = None
    status: str | None = None
    data_agendamento: date | None = None
    entrevista_id: str | None = None
    entrevista_aprovada: bool
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class ProposalCreate(BaseModel):
    """Two candidate dates and a shared time window offered to a client."""

    kind: MeetingKind
    cliente_nome: str
    telefone: str
    data_opcao_1: date
    data_opcao_2: date
    horario_inicio: str = Field(pattern=_HHMM_PATTERN)
    horario_fim: str = Field(pattern=_HHMM_PATTERN)
    conformidade_id: str | None = None
    tipo_contrato: TipoContrato | None = None
    modalidade_financiamento: str | None = None
    comite_credito: bool = False
    send_invite: bool = True


class ProposalConfirm(BaseModel):
    """Confirmation of one candidate date (option 1/2) or a free third date."""

    chosen_date: date
    chosen_option: Literal[1, 2] | None = None
    chosen_time: str = Field(pattern=_HHMM_PATTERN)


class ProposalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: str
    conformidade_id: str | None = None
    cca_user_id: str | None = None
    cliente_nome: str
    telefone: str
    chat_id: str | None = None
    data_opcao_1: date
    data_opcao_2: date
    horario_inicio: str
    horario_fim: str
    tipo_contrato: str | None = None
    modalidade_financiamento: str | None = None
    comite_credito: bool | None = None
    endereco_agencia: str | None = None
    status: str
    data_confirmada: date | None = None
    opcao_escolhida: int | None = None
    horario_confirmado: str | None = None
    lembrete_enviado_em: datetime | None = None
    created_at: datetime | None = None


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tipo: str
    cca_user_id: str | None = None
    conformidade_id: str | None = None
    proposta_id: str | None = None
    cpf: str | None = None
    cliente_nome: str | None = None
    telefone_cliente: str | None = None
    tipo_contrato: str | None = None
    modalidade_financiamento: str | None = None
    comite_credito: bool | None = None
    data_hora: str
    status: str | None = None
    observacoes: str | None = None
    dossie_cliente_url: str | None = None


class ConfirmationResponse(BaseModel):
    proposal: ProposalResponse
    appointment: AppointmentResponse


class AppointmentReschedule(BaseModel):
    new_date: date
    new_time: str = Field(pattern=_HHMM_PATTERN)
    notify_client: bool = False
    telefone_cliente: str | None = None


class AppointmentStatusUpdate(BaseModel):
    status: str
    observacoes: str | None = None


class InterviewDecision(BaseModel):
    approved: bool
    motivo: str | None = None
    observacoes: str | None = None


# ---------------------------------------------------------------------------
# Demands
# ---------------------------------------------------------------------------


class DemandCreate(BaseModel):
    type: DemandType
    cpf: str | None = None
    matricula: str | None = None
    cartorio: str | None = None
    numero_pis: str | None = None
    description: str | None = None
    carta_solicitacao_pdf: str | None = None
    ficha_cadastro_pdf: str | None = None
    matricula_imovel_pdf: str | None = None
    mo_autorizacao_pdf: str | None = None


class DemandRespond(BaseModel):
    status: DemandStatus
    response_text: str | None = None


class DemandResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cca_user_id: str
    codigo_cca: str
    type: str
    cpf: str | None = None
    matricula: str | None = None
    cartorio: str | None = None
    numero_pis: str | None = None
    description: str | None = None
    carta_solicitacao_pdf: str | None = None
    ficha_cadastro_pdf: str | None = None
    matricula_imovel_pdf: str | None = None
    mo_autorizacao_pdf: str | None = None
    mo_autorizacao_assinado_pdf: str | None = None
    response_text: str | None = None
    status: str
    assinatura_data: datetime | None = None
    concluded_at: datetime | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Task distribution
# ---------------------------------------------------------------------------


class TaskDistributeRequest(BaseModel):
    """Payload accepted by the distribution endpoint (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    tipo_tarefa: TaskKind = Field(alias="tipoTarefa")
    referencia_id: str = Field(alias="referenciaId")
    empregados_ids: list[str] = Field(alias="empregadosIds", min_length=1)


class DistributedTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tipo_tarefa: str
    referencia_id: str
    user_id: str | None = None
    status: str
    reply_to: str | None = None
    concluida_em: datetime | None = None
    concluida_por_email: bool | None = None
    matched_keyword: str | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class EmailTemplateCreate(BaseModel):
    template_key: str
    name: str
    module: str = "tarefas"
    subject: str
    body: str
    description: str | None = None
    available_variables: dict[str, str] = Field(default_factory=dict)


class EmailTemplateUpdate(BaseModel):
    name: str | None = None
    subject: str | None = None
    body: str | None = None
    description: str | None = None
    available_variables: dict[str, str] | None = None


class EmailTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    template_key: str
    name: str
    module: str
    subject: str
    body: str
    description: str | None = None
    available_variables: dict | None = None


class WhatsAppTemplateCreate(BaseModel):
    template_key: str
    name: str
    message: str
    description: str | None = None
    demand_type: str | None = None
    available_variables: dict[str, str] = Field(default_factory=dict)


class WhatsAppTemplateUpdate(BaseModel):
    name: str | None = None
    message: str | None = None
    description: str | None = None
    demand_type: str | None = None
    available_variables: dict[str, str] | None = None


class WhatsAppTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    template_key: str
    name: str
    message: str
    description: str | None = None
    demand_type: str | None = None
    available_variables: dict | None = None


class TemplatePreviewRequest(BaseModel):
    text: str
    variables: dict[str, str] | None = None


class TemplateCheckResponse(BaseModel):
    valid: bool
    variables: list[str]
    preview: str | None = None


# ---------------------------------------------------------------------------
# WhatsApp / notifications
# ---------------------------------------------------------------------------


class SendWhatsAppRequest(BaseModel):
    phone: str
    message: str

    @field_validator("phone", "message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class SignedDocumentEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    demand_id: str = Field(alias="demandId")
    cca_user_id: str = Field(alias="ccaUserId")
    cpf: str | None = None
    matricula: str | None = None
    pdf_path: str = Field(alias="pdfPath")


# ---------------------------------------------------------------------------
# AI documents
# ---------------------------------------------------------------------------


class ExtractDocumentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pdf_base64: str | None = Field(default=None, alias="pdfBase64")
    file_type: str | None = Field(default=None, alias="fileType")


class ImproveTextRequest(BaseModel):
    text: str | None = None
