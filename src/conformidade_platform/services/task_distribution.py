"""Distribute a task to employees by e-mail.

For each employee one ``distribuicao_tarefas`` row is created and one e-mail
is sent from the ``task_<kind>`` (or ``task_demanda_<demand type>``) template.
The e-mail's Reply-To embeds the task id so a reply can close it (see
``inbound_email``). Failures are collected per employee.
"""

import logging
from datetime import datetime, timezone
from html import escape

from sqlalchemy.ext.asyncio import AsyncSession

from conformidade_platform.app.config import get_settings
from conformidade_platform.domain.enums import DEMAND_TYPE_LABELS, DemandType, TaskKind, TaskStatus, UserRole
from conformidade_platform.domain.models import Appointment, Conformidade, Demand, DistributedTask, User
from conformidade_platform.services import email_service
from conformidade_platform.services.errors import NotFoundError
from conformidade_platform.services.status_transitions import validate_transition
from conformidade_platform.services.templates import conformidade_variables, get_email_template, render

logger = logging.getLogger(__name__)

EMPLOYEE_NOT_FOUND = "empregado_not_found"

DOMAIN_NOT_VERIFIED_MESSAGE = (
    "Domínio de e-mail não verificado. Configure um domínio verificado no provedor de e-mail "
    "para enviar e-mails a qualquer destinatário."
)


def reply_to_address(task_id: str) -> str:
    return f"tarefa-{task_id}@{get_settings().inbound_email_domain}"


def html_variables(variables: dict[str, object]) -> dict[str, object]:
    """Escape values bound for an HTML body; subjects keep the raw values."""
    return {key: None if value is None else escape(str(value)) for key, value in variables.items()}


def fallback_body(employee_name: str, kind: str) -> str:
    return (
        f"<h2>Olá {escape(employee_name)},</h2>"
        f"<p>Você recebeu uma nova tarefa do tipo <strong>{escape(kind)}</strong>.</p>"
        "<p>Por favor, acesse o sistema para mais detalhes.</p>"
        "<p>Atenciosamente,<br>Sistema de Gestão</p>"
    )


class TaskDistributionService:
    """Create task rows and send one templated e-mail per employee."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _reference(self, kind: TaskKind, reference_id: str):
        model = {
            TaskKind.DEMANDA: Demand,
            TaskKind.ASSINATURA: Appointment,
            TaskKind.COMITE: Conformidade,
        }[kind]
        record = await self.db.get(model, reference_id)
        if record is None:
            raise NotFoundError(model.__name__, reference_id)
        return record

    async def _variables(self, kind: TaskKind, record) -> dict[str, str]:
        cca = None
        if getattr(record, "cca_user_id", None):
            cca = await self.db.get(User, record.cca_user_id)

        if kind == TaskKind.COMITE:
            return conformidade_variables(record, cca)

        variables = {
            "cpf": record.cpf or "",
            "nome_cca": (cca.full_name if cca else "") or "",
            "telefone_cca": (cca.phone if cca else "") or "",
        }
        if kind == TaskKind.DEMANDA:
            try:
                label = DEMAND_TYPE_LABELS[DemandType(record.type)]
            except ValueError:
                label = record.type
            variables.update(
                tipo_demanda=label,
                codigo_cca=record.codigo_cca or "",
                matricula=record.matricula or "",
                cartorio=record.cartorio or "",
                numero_pis=record.numero_pis or "",
                descricao=record.description or "",
            )
        else:
            variables.update(
                cliente_nome=record.cliente_nome or "",
                data_hora=record.data_hora,
                modalidade=record.modalidade_financiamento or "",
                tipo_contrato=record.tipo_contrato or "",
            )
        return variables

    async def distribute(
        self, kind: TaskKind, reference_id: str, employee_ids: list[str]
    ) -> tuple[int, dict]:
        """Distribute and return ``(http_status, body)``.

        The call succeeds when at least one e-mail went out. When every send
        failed, 403 ``domain_not_verified`` is returned if that was the
        reason for all of them, 500 ``email_send_failed`` otherwise.
        """
        record = await self._reference(kind, reference_id)
        template_key = f"task_{kind.value}"
        if kind == TaskKind.DEMANDA and record.type:
            template_key = f"task_demanda_{record.type}"
        template = await get_email_template(self.db, template_key)
        variables = await self._variables(kind, record)
        logger.info(
            "[distribution] %s %s to %d employee(s), template=%s (%s)",
            kind.value, reference_id, len(employee_ids), template_key,
            "found" if template else "fallback",
        )

        results: list[dict] = []
        for employee_id in employee_ids:
            employee = await self.db.get(User, employee_id)
            task = None
            if employee is not None:
                task = DistributedTask(
                    tipo_tarefa=kind.value,
                    referencia_id=reference_id,
                    user_id=employee_id,
                    status=TaskStatus.EM_ANDAMENTO.value,
                )
                self.db.add(task)
                await self.db.flush()

            if employee is None or not employee.email_preferencia:
                logger.warning("[distribution] employee %s has no e-mail", employee_id)
                results.append({"empregadoId": employee_id, "success": False, "error": EMPLOYEE_NOT_FOUND})
                continue

            task.reply_to = reply_to_address(task.id)
            employee_vars = {**variables, "nome_empregado": employee.full_name, "tipo_tarefa": kind.value}
            if template is not None:
                subject = render(template.subject, employee_vars)
                body = render(template.body, html_variables(employee_vars))
            else:
                subject = f"Nova Tarefa: {kind.value}"
                body = fallback_body(employee.full_name, kind.value)

            sent = await email_service.send_email(
                employee.email_preferencia, subject, body, reply_to=task.reply_to
            )
            if sent.get("ok"):
                task.provider_message_id = sent.get("message_id")
                results.append(
                    {"empregadoId": employee_id, "success": True, "email": employee.email_preferencia, "taskId": task.id}
                )
            else:
                results.append(
                    {
                        "empregadoId": employee_id,
                        "success": False,
                        "error": sent.get("error", email_service.EMAIL_SEND_FAILED),
                        "message": sent.get("detail"),
                        "taskId": task.id,
                    }
                )

        await self.db.commit()
        return self._summarize(results)

    @staticmethod
    def _summarize(results: list[dict]) -> tuple[int, dict]:
        success_count = sum(1 for r in results if r["success"])
        failed_count = len(results) - success_count

        if results and all(r.get("error") == email_service.DOMAIN_NOT_VERIFIED for r in results):
            return 403, {
                "success": False,
                "error": email_service.DOMAIN_NOT_VERIFIED,
                "message": DOMAIN_NOT_VERIFIED_MESSAGE,
                "successCount": 0,
                "failedCount": failed_count,
                "results": results,
            }
        if success_count == 0 and failed_count > 0:
            detail = results[0].get("message") or results[0].get("error")
            return 500, {
                "success": False,
                "error": email_service.EMAIL_SEND_FAILED,
                "message": f"Falha ao enviar e-mails. {detail}",
                "successCount": 0,
                "failedCount": failed_count,
                "results": results,
            }

        message = f"Tarefa distribuída para {success_count} empregado(s)"
        if failed_count:
            message += f", {failed_count} falha(s)"
        return 200, {
            "success": True,
            "message": message,
            "successCount": success_count,
            "failedCount": failed_count,
            "results": results,
        }

    async def complete_manually(self, task_id: str, user: User) -> DistributedTask:
        """Close one task from the app; a completed task never reopens."""
        task = await self.db.get(DistributedTask, task_id)
        if task is None:
            raise NotFoundError("DistributedTask", task_id)
        if user.role != UserRole.AGENCIA.value and task.user_id != user.id:
            raise NotFoundError("DistributedTask", task_id)
        validate_transition(TaskStatus(task.status), TaskStatus.CONCLUIDA)
        task.status = TaskStatus.CONCLUIDA.value
        task.concluida_em = datetime.now(timezone.utc)
        task.concluida_por_email = False
        await self.db.commit()
        logger.info("[distribution] task %s completed by %s", task.id, user.id)
        return task
