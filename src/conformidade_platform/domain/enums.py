"""Domain enumerations for the conformidade platform.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
Values are the Portuguese labels persisted in the database.
"""

from enum import Enum


class UserRole(str, Enum):
    """Who is operating the system."""

    AGENCIA = "agencia"
    CCA = "cca"


class ModalidadeFinanciamento(str, Enum):
    """Financing modality of a contract."""

    SBPE = "SBPE"
    MCMV = "MCMV"
    OUTRO = "OUTRO"


class TipoContrato(str, Enum):
    """Contract type: a single borrower or a development (empreendimento)."""

    INDIVIDUAL = "individual"
    EMPREENDIMENTO = "empreendimento"


class MeetingKind(str, Enum):
    """Kind of client meeting. Shared by proposals and confirmed appointments."""

    ENTREVISTA = "entrevista"
    ASSINATURA = "assinatura"


class ProposalStatus(str, Enum):
    """Status of a two-date scheduling proposal."""

    PENDENTE = "pendente"
    CONFIRMADO = "confirmado"


class AppointmentStatus(str, Enum):
    """Common labels for confirmed appointments.

    The column is free text; these are the labels the platform itself writes.
    """

    ENTREVISTA_AGENDADA = "Agendado"
    ASSINATURA_AGENDADA = "Aguardando assinatura"
    APROVADO = "Aprovado"
    REPROVADO = "Reprovado"
    ASSINADO = "Assinado"
    ASSINATURA_CONFIRMADA = "Assinatura confirmada"
    CANCELADO = "Cancelado"
    CONCLUIDO = "Concluído"


class TaskKind(str, Enum):
    """What a distributed task points at."""

    DEMANDA = "demanda"
    ASSINATURA = "assinatura"
    COMITE = "comite"


class TaskStatus(str, Enum):
    """Status of a distributed task."""

    EM_ANDAMENTO = "em_andamento"
    CONCLUIDA = "concluida"


class DemandStatus(str, Enum):
    """Status of an agency demand."""

    PENDENTE = "pendente"
    AGUARDANDO_ASSINATURA = "aguardando_assinatura"
    ASSINADO = "assinado"
    CONCLUIDA = "concluida"
    CANCELADA = "cancelada"


class DemandType(str, Enum):
    """Kinds of request a CCA can open with the agency."""

    AUTORIZA_REAVALIACAO = "autoriza_reavaliacao"
    DESCONSIDERA_AVALIACOES = "desconsidera_avaliacoes"
    VINCULA_IMOVEL = "vincula_imovel"
    CANCELA_AVALIACAO_SICAQ = "cancela_avaliacao_sicaq"
    CANCELA_PROPOSTA_SIOPI = "cancela_proposta_siopi"
    SOLICITAR_AVALIACAO_SIGDU = "solicitar_avaliacao_sigdu"
    OUTRAS = "outras"
    INCLUIR_PIS_SIOPI = "incluir_pis_siopi"
    AUTORIZA_VENDEDOR_RESTRICAO = "autoriza_vendedor_restricao"


DEMAND_TYPE_LABELS: dict[DemandType, str] = {
    DemandType.AUTORIZA_REAVALIACAO: "Autoriza Reavaliação",
    DemandType.DESCONSIDERA_AVALIACOES: "Desconsidera Avaliações",
    DemandType.VINCULA_IMOVEL: "Vincula Imóvel",
    DemandType.CANCELA_AVALIACAO_SICAQ: "Cancela Avaliação SICAQ",
    DemandType.CANCELA_PROPOSTA_SIOPI: "Cancela Proposta SIOPI",
    DemandType.SOLICITAR_AVALIACAO_SIGDU: "Solicitar Avaliação SIGDU",
    DemandType.OUTRAS: "Outras",
    DemandType.INCLUIR_PIS_SIOPI: "Incluir PIS no SIOPI",
    DemandType.AUTORIZA_VENDEDOR_RESTRICAO: "Autoriza Vendedor com Restrição",
}


class TaskEmailAction(str, Enum):
    """Outcome recorded in the task_email_events audit table."""

    IGNORED_NO_ID = "ignored_no_id"
    IGNORED_NOT_FOUND = "ignored_not_found"
    IGNORED_ALREADY_COMPLETED = "ignored_already_completed"
    IGNORED_NO_KEYWORD = "ignored_no_keyword"
    COMPLETED = "completed_via_keyword"


class DocumentType(str, Enum):
    """Documents the AI extractors understand."""

    CERTIDAO_CASAMENTO = "certidao_casamento"
    MATRICULA_IMOVEL = "matricula_imovel"
