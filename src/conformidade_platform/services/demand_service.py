"""Demands: requests a CCA opens with the agency, and the agency's answers."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.domain.enums import DEMAND_TYPE_LABELS, DemandStatus, DemandType, UserRole
from conformidade_platform.domain.models import Demand, User
from conformidade_platform.domain.schemas import DemandCreate
from conformidade_platform.services import storage
from conformidade_platform.services.cpf import clean_cpf
from conformidade_platform.services.errors import NotFoundError
from conformidade_platform.services.notification_dispatcher import NotificationDispatcher, dispatcher
from conformidade_platform.services.signed_document_service import SignedDocumentService, deliver_signed_document
from conformidade_platform.services.status_transitions import validate_transition
from conformidade_platform.services.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)


def type_label(demand_type: str) -> str:
    try:
        return DEMAND_TYPE_LABELS[DemandType(demand_type)]
    except ValueError:
        return demand_type


class DemandService:
    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationDispatcher | None = None,
        whatsapp: WhatsAppService | None = None,
    ):
        self.db = db
        self.notifier = notifier or dispatcher
        self.whatsapp = whatsapp or WhatsAppService()

    async def get(self, demand_id: str) -> Demand:
        demand = await self.db.get(Demand, demand_id)
        if demand is None:
            raise NotFoundError("Demand", demand_id)
        return demand

    async def create(self, data: DemandCreate, cca: User) -> Demand:
        """Open a demand and alert the agency manager on WhatsApp."""
        demand = Demand(
            cca_user_id=cca.id,
            codigo_cca=cca.codigo_cca or "",
            type=data.type.value,
            cpf=clean_cpf(data.cpf) or None,
            matricula=data.matricula or None,
            cartorio=data.cartorio or None,
            numero_pis=data.numero_pis or None,
            description=data.description or None,
            carta_solicitacao_pdf=data.carta_solicitacao_pdf,
            ficha_cadastro_pdf=data.ficha_cadastro_pdf,
            matricula_imovel_pdf=data.matricula_imovel_pdf,
            mo_autorizacao_pdf=data.mo_autorizacao_pdf,
            status=DemandStatus.PENDENTE.value,
        )
        self.db.add(demand)
        await self.db.commit()
        await self.db.refresh(demand)
        logger.info("Demand %s (%s) created by %s", demand.id, demand.type, cca.id)

        result = await self.db.execute(
            select(User)
            .where(User.role == UserRole.AGENCIA.value, User.phone.is_not(None))
            .order_by(User.created_at)
            .limit(1)
        )
        manager = result.scalar_one_or_none()
        if manager is not None:
            message = (
                "🔔 *Nova Demanda Criada*\n\n"
                f"*CCA:* {cca.full_name or 'N/A'} ({cca.codigo_cca or ''})\n"
                f"*Tipo:* {type_label(demand.type)}\n"
                f"*CPF:* {demand.cpf or 'N/A'}\n"
                f"*Descrição:* {demand.description or 'N/A'}"
            )
            self.notifier.spawn(
                self.whatsapp.send_message(manager.phone, message),
                f"whatsapp:demand-created:{demand.id}",
            )
        return demand

    async def respond(self, demand_id: str, status: DemandStatus, response_text: str | None) -> Demand:
        """Agency answer: new status and text; the CCA hears about it on WhatsApp."""
        demand = await self.get(demand_id)
        current = DemandStatus(demand.status)
        if current != status:
            validate_transition(current, status)
        demand.status = status.value
        demand.response_text = response_text or None
        demand.concluded_at = datetime.now(timezone.utc) if status == DemandStatus.CONCLUIDA else None
        await self.db.commit()

        cca = await self.db.get(User, demand.cca_user_id)
        if response_text and cca is not None and cca.phone:
            status_label = {
                DemandStatus.CONCLUIDA: "✅ Concluída",
                DemandStatus.CANCELADA: "❌ Cancelada",
            }.get(status, status.value)
            message = (
                "🔔 *Demanda Respondida*\n\n"
                f"*Status:* {status_label}\n"
                f"*Tipo:* {type_label(demand.type)}\n"
                f"*Resposta:* {response_text}\n\n"
                "A gerência analisou sua demanda."
            )
            self.notifier.spawn(
                self.whatsapp.send_message(cca.phone, message),
                f"whatsapp:demand-response:{demand.id}",
            )
        return demand

    async def attach_signed_authorization(self, demand_id: str, filename: str, content: bytes) -> Demand:
        """Store the signed PDF, mark the demand signed and mail it to the CCA."""
        demand = await self.get(demand_id)
        validate_transition(DemandStatus(demand.status), DemandStatus.ASSINADO)

        path = storage.save_file(f"demands/{demand.id}", filename, content)
        demand.mo_autorizacao_assinado_pdf = path
        demand.status = DemandStatus.ASSINADO.value
        demand.assinatura_data = datetime.now(timezone.utc)
        await self.db.commit()

        recipient = await SignedDocumentService(self.db, self.whatsapp).recipient(demand.cca_user_id)
        if recipient is not None:
            self.notifier.spawn(
                deliver_signed_document(
                    **recipient,
                    cpf=demand.cpf,
                    matricula=demand.matricula,
                    pdf_path=path,
                    whatsapp=self.whatsapp,
                ),
                f"email:signed-document:{demand.id}",
            )
        else:
            logger.warning("Demand %s: CCA has no e-mail, signed document not sent", demand.id)
        return demand
