"""Task distribution by e-mail: per-employee outcomes, status mapping, manual completion."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from conformidade_platform.app.routes.tasks import router
from conformidade_platform.domain.enums import TaskKind
from conformidade_platform.domain.models import DistributedTask, EmailTemplate
from conformidade_platform.services.errors import NotFoundError
from conformidade_platform.services.inbound_email import html_to_text, match_keyword
from conformidade_platform.services.status_transitions import InvalidTransitionError
from conformidade_platform.services.task_distribution import TaskDistributionService


class TestDistribute:
    async def test_partial_success(self, db_session, email_mock, make_user, make_demand):
        cca = await make_user(full_name="Maria Silva")
        demand = await make_demand(cca)
        ana = await make_user(role="agencia", full_name="Ana", email_preferencia="ana@banco.com.br")
        bruno = await make_user(role="agencia", full_name="Bruno", email_preferencia="bruno@banco.com.br")
        carla = await make_user(role="agencia", full_name="Carla", email_preferencia=None)

        status_code, body = await TaskDistributionService(db_session).distribute(
            TaskKind.DEMANDA, demand.id, [ana.id, bruno.id, carla.id]
        )

        assert status_code == 200
        assert body["success"] is True
        assert body["successCount"] == 2
        assert body["failedCount"] == 1
        failed = [r for r in body["results"] if not r["success"]]
        assert failed == [{"empregadoId": carla.id, "success": False, "error": "empregado_not_found"}]

        assert [m["to"] for m in email_mock.sent] == ["ana@banco.com.br", "bruno@banco.com.br"]
        for result, mail in zip(body["results"][:2], email_mock.sent):
            assert mail["reply_to"] == f"tarefa-{result['taskId']}@inbound.manchester.com.br"
            assert mail["subject"] == "Nova Tarefa: demanda"

        task = await db_session.get(DistributedTask, body["results"][0]["taskId"])
        assert task.status == "em_andamento"
        assert task.provider_message_id == "msg-1"

    async def test_unknown_employee(self, db_session, email_mock, make_user, make_demand):
        cca = await make_user()
        demand = await make_demand(cca)
        ana = await make_user(role="agencia", email_preferencia="ana@banco.com.br")

        status_code, body = await TaskDistributionService(db_session).distribute(
            TaskKind.DEMANDA, demand.id, [ana.id, "ghost"]
        )

        assert status_code == 200
        assert body["results"][1] == {"empregadoId": "ghost", "success": False, "error": "empregado_not_found"}
        rows = (await db_session.execute(select(DistributedTask))).scalars().all()
        assert [t.user_id for t in rows] == [ana.id]

    async def test_demand_template_rendered(self, db_session, email_mock, make_user, make_demand):
        cca = await make_user(full_name="Maria Silva")
        demand = await make_demand(cca)
        db_session.add(
            EmailTemplate(
                template_key="task_demanda_autoriza_reavaliacao",
                name="Reavaliação",
                subject="{{tipo_demanda}} - CPF {{cpf}}",
                body="<p>Olá {{nome_empregado}}, demanda de {{nome_cca}} ({{matricula}}). {{desconhecida}}</p>",
            )
        )
        ana = await make_user(role="agencia", full_name="Ana", email_preferencia="ana@banco.com.br")

        await TaskDistributionService(db_session).distribute(TaskKind.DEMANDA, demand.id, [ana.id])

        mail = email_mock.sent[0]
        assert mail["subject"] == "Autoriza Reavaliação - CPF 52998224725"
        assert mail["html"] == "<p>Olá Ana, demanda de Maria Silva (12345). {{desconhecida}}</p>"

    async def test_template_values_escaped_in_body(self, db_session, email_mock, make_user, make_demand):
        cca = await make_user(full_name="Maria <b>Silva</b>")
        demand = await make_demand(cca, description='<a href="http://x">clique</a> & confira')
        db_session.add(
            EmailTemplate(
                template_key="task_demanda_autoriza_reavaliacao",
                name="Reavaliação",
                subject="Demanda de {{nome_cca}}",
                body="<p>{{nome_cca}}: {{descricao}}</p>",
            )
        )
        ana = await make_user(role="agencia", full_name="Ana", email_preferencia="ana@banco.com.br")

        await TaskDistributionService(db_session).distribute(TaskKind.DEMANDA, demand.id, [ana.id])

        mail = email_mock.sent[0]
        assert mail["subject"] == "Demanda de Maria <b>Silva</b>"
        assert mail["html"] == (
            "<p>Maria &lt;b&gt;Silva&lt;/b&gt;: "
            "&lt;a href=&quot;http://x&quot;&gt;clique&lt;/a&gt; &amp; confira</p>"
        )

    async def test_fallback_body_has_no_confirmation_keyword(self, db_session, email_mock, make_user, make_demand):
        demand = await make_demand(await make_user())
        ana = await make_user(role="agencia", full_name="Ana", email_preferencia="ana@banco.com.br")

        await TaskDistributionService(db_session).distribute(TaskKind.DEMANDA, demand.id, [ana.id])

        assert match_keyword(html_to_text(email_mock.sent[0]["html"])) is None

    async def test_all_domain_not_verified(self, db_session, make_user, make_demand):
        cca = await make_user()
        demand = await make_demand(cca)
        ana = await make_user(role="agencia", email_preferencia="ana@banco.com.br")
        bruno = await make_user(role="agencia", email_preferencia="bruno@banco.com.br")

        failure = {"ok": False, "error": "domain_not_verified", "detail": "The from address does not match a verified Sender Identity"}
        with patch(
            "conformidade_platform.services.email_service.send_email",
            new=AsyncMock(return_value=failure),
        ):
            status_code, body = await TaskDistributionService(db_session).distribute(
                TaskKind.DEMANDA, demand.id, [ana.id, bruno.id]
            )

        assert status_code == 403
        assert body["error"] == "domain_not_verified"
        assert body["successCount"] == 0
        assert body["failedCount"] == 2

    async def test_all_failed_for_other_reasons(self, db_session, make_user, make_demand):
        cca = await make_user()
        demand = await make_demand(cca)
        ana = await make_user(role="agencia", email_preferencia="ana@banco.com.br")

        failure = {"ok": False, "error": "email_send_failed", "detail": "timeout"}
        with patch(
            "conformidade_platform.services.email_service.send_email",
            new=AsyncMock(return_value=failure),
        ):
            status_code, body = await TaskDistributionService(db_session).distribute(
                TaskKind.DEMANDA, demand.id, [ana.id]
            )

        assert status_code == 500
        assert body["error"] == "email_send_failed"
        assert "timeout" in body["message"]

    async def test_missing_reference(self, db_session, email_mock):
        with pytest.raises(NotFoundError):
            await TaskDistributionService(db_session).distribute(TaskKind.COMITE, "missing", ["x"])
        assert email_mock.sent == []


class TestManualCompletion:
    async def test_assignee_completes(self, db_session, make_user, make_task):
        employee = await make_user(role="cca")
        task = await make_task("ref-1", user=employee)

        completed = await TaskDistributionService(db_session).complete_manually(task.id, employee)

        assert completed.status == "concluida"
        assert completed.concluida_por_email is False
        assert completed.concluida_em is not None

    async def test_completed_task_never_reopens(self, db_session, make_user, make_task):
        agency = await make_user(role="agencia")
        task = await make_task("ref-1", status="concluida")
        with pytest.raises(InvalidTransitionError):
            await TaskDistributionService(db_session).complete_manually(task.id, agency)

    async def test_other_cca_cannot_see_task(self, db_session, make_user, make_task):
        owner = await make_user()
        stranger = await make_user()
        task = await make_task("ref-1", user=owner)
        with pytest.raises(NotFoundError):
            await TaskDistributionService(db_session).complete_manually(task.id, stranger)


class TestRoutes:
    async def test_distribute_returns_service_status(self, build_client, make_user, make_demand):
        agency = await make_user(role="agencia")
        cca = await make_user()
        demand = await make_demand(cca)
        ana = await make_user(role="agencia", email_preferencia="ana@banco.com.br")

        failure = {"ok": False, "error": "domain_not_verified", "detail": "not verified"}
        with patch(
            "conformidade_platform.services.email_service.send_email",
            new=AsyncMock(return_value=failure),
        ):
            async with build_client(router, user=agency) as client:
                resp = await client.post(
                    "/api/tasks/distribute",
                    json={"tipoTarefa": "demanda", "referenciaId": demand.id, "empregadosIds": [ana.id]},
                )

        assert resp.status_code == 403
        assert resp.json()["error"] == "domain_not_verified"

    async def test_distribute_requires_agency(self, build_client, make_user):
        cca = await make_user()
        async with build_client(router, user=cca) as client:
            resp = await client.post(
                "/api/tasks/distribute",
                json={"tipoTarefa": "demanda", "referenciaId": "x", "empregadosIds": ["y"]},
            )
        assert resp.status_code == 403

    async def test_complete_twice_conflicts(self, build_client, make_user, make_task):
        employee = await make_user()
        task = await make_task("ref-1", user=employee)

        async with build_client(router, user=employee) as client:
            first = await client.post(f"/api/tasks/{task.id}/complete")
            second = await client.post(f"/api/tasks/{task.id}/complete")
            mine = await client.get("/api/tasks/mine")

        assert first.status_code == 200
        assert first.json()["status"] == "concluida"
        assert second.status_code == 409
        assert [t["id"] for t in mine.json()] == [task.id]
