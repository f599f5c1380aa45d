"""HTTP surface: auth, conformidades and scheduling routes."""

from sqlalchemy import func, select

from conformidade_platform.app.routes.auth import router as auth_router
from conformidade_platform.app.routes.conformidades import router as conformidades_router
from conformidade_platform.app.routes.scheduling import router as scheduling_router
from conformidade_platform.domain.models import Appointment
from conformidade_platform.services.notification_dispatcher import dispatcher
from conformidade_platform.services.whatsapp_service import get_whatsapp_service

VALID_CPF = "52998224725"
OTHER_VALID_CPF = "11144477735"


def _conformidade_payload(cpf: str = "529.982.247-25", **overrides) -> dict:
    payload = {"cpf": cpf, "valor_financiamento": "350000.00", "modalidade": "SBPE"}
    payload.update(overrides)
    return payload


class TestAuth:
    async def test_signup_always_creates_cca(self, build_client):
        async with build_client(auth_router) as client:
            resp = await client.post(
                "/api/auth/signup",
                json={"email": "Nova@CCA.com", "password": "segredo123", "full_name": "Nova CCA", "role": "agencia"},
            )
            duplicate = await client.post(
                "/api/auth/signup",
                json={"email": "nova@cca.com", "password": "x", "full_name": "Outra"},
            )
        assert resp.status_code == 200
        user = resp.json()["user"]
        assert user["role"] == "cca"
        assert user["email"] == "nova@cca.com"
        assert duplicate.status_code == 400

    async def test_login_and_me(self, build_client):
        async with build_client(auth_router) as client:
            await client.post(
                "/api/auth/signup",
                json={"email": "ana@cca.com", "password": "segredo123", "full_name": "Ana"},
            )
            wrong = await client.post("/api/auth/login", json={"email": "ana@cca.com", "password": "errada"})
            ok = await client.post("/api/auth/login", json={"email": "ana@cca.com", "password": "segredo123"})
            token = ok.json()["access_token"]
            me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert wrong.status_code == 401
        assert ok.status_code == 200
        assert me.json()["full_name"] == "Ana"

    async def test_staff_accounts_need_agency(self, build_client, make_user):
        cca = await make_user()
        agency = await make_user(role="agencia")
        account = {"email": "func@banco.com", "password": "x", "full_name": "Funcionário", "role": "agencia"}

        async with build_client(auth_router, user=cca) as client:
            denied = await client.post("/api/auth/users", json=account)
        async with build_client(auth_router, user=agency) as client:
            created = await client.post("/api/auth/users", json=account)
            listed = await client.get("/api/auth/users", params={"role": "agencia"})

        assert denied.status_code == 403
        assert created.status_code == 201
        assert created.json()["role"] == "agencia"
        assert {u["email"] for u in listed.json()} >= {"func@banco.com", agency.email}


class TestConformidades:
    async def test_invalid_cpf(self, build_client, make_user):
        cca = await make_user()
        async with build_client(conformidades_router, user=cca) as client:
            resp = await client.post("/api/conformidades", json=_conformidade_payload("123.456.789-00"))
        assert resp.status_code == 422
        assert resp.json()["detail"] == "CPF inválido"

    async def test_create_stores_clean_cpf_and_rejects_duplicate(self, build_client, make_user):
        cca = await make_user(codigo_cca="CCA042")
        async with build_client(conformidades_router, user=cca) as client:
            created = await client.post("/api/conformidades", json=_conformidade_payload())
            duplicate = await client.post("/api/conformidades", json=_conformidade_payload(VALID_CPF))

        assert created.status_code == 201
        body = created.json()
        assert body["cpf"] == VALID_CPF
        assert body["codigo_cca"] == "CCA042"
        assert body["entrevista_aprovada"] is False
        assert duplicate.status_code == 409

    async def test_outro_requires_description(self, build_client, make_user):
        cca = await make_user()
        async with build_client(conformidades_router, user=cca) as client:
            resp = await client.post("/api/conformidades", json=_conformidade_payload(modalidade="OUTRO"))
        assert resp.status_code == 422

    async def test_cca_scoping(self, build_client, make_user, make_conformidade):
        owner = await make_user()
        other = await make_user()
        agency = await make_user(role="agencia")
        mine = await make_conformidade(owner)
        theirs = await make_conformidade(other, cpf=OTHER_VALID_CPF)

        async with build_client(conformidades_router, user=owner) as client:
            listed = await client.get("/api/conformidades")
            hidden = await client.get(f"/api/conformidades/{theirs.id}")
        async with build_client(conformidades_router, user=agency) as client:
            everything = await client.get("/api/conformidades")
            by_cpf = await client.get("/api/conformidades", params={"cpf": "111.444.777-35"})

        assert [c["id"] for c in listed.json()] == [mine.id]
        assert hidden.status_code == 404
        assert {c["id"] for c in everything.json()} == {mine.id, theirs.id}
        assert [c["id"] for c in by_cpf.json()] == [theirs.id]

    async def test_only_agency_sets_interview_approval(self, build_client, make_user, make_conformidade):
        cca = await make_user()
        agency = await make_user(role="agencia")
        conformidade = await make_conformidade(cca)

        async with build_client(conformidades_router, user=cca) as client:
            denied = await client.patch(f"/api/conformidades/{conformidade.id}", json={"entrevista_aprovada": True})
            notes = await client.patch(f"/api/conformidades/{conformidade.id}", json={"observacoes": "Pendente IR"})
        async with build_client(conformidades_router, user=agency) as client:
            approved = await client.patch(f"/api/conformidades/{conformidade.id}", json={"entrevista_aprovada": True})

        assert denied.status_code == 403
        assert notes.json()["observacoes"] == "Pendente IR"
        assert approved.json()["entrevista_aprovada"] is True


class TestSchedulingRoutes:
    def _proposal(self, **overrides) -> dict:
        payload = {
            "kind": "entrevista",
            "cliente_nome": "João Souza",
            "telefone": "11999990000",
            "data_opcao_1": "2025-06-10",
            "data_opcao_2": "2025-06-12",
            "horario_inicio": "09:00",
            "horario_fim": "17:00",
        }
        payload.update(overrides)
        return payload

    async def test_propose_and_confirm(self, build_client, db_session, whatsapp_mock, make_user):
        cca = await make_user()
        async with build_client(
            scheduling_router, user=cca, overrides={get_whatsapp_service: lambda: whatsapp_mock}
        ) as client:
            created = await client.post("/api/scheduling/proposals", json=self._proposal())
            proposal_id = created.json()["id"]
            late = await client.post(
                f"/api/scheduling/proposals/{proposal_id}/confirm",
                json={"chosen_date": "2025-06-10", "chosen_option": 1, "chosen_time": "17:01"},
            )
            confirmed = await client.post(
                f"/api/scheduling/proposals/{proposal_id}/confirm",
                json={"chosen_date": "2025-06-10", "chosen_option": 1, "chosen_time": "16:59"},
            )
            again = await client.post(
                f"/api/scheduling/proposals/{proposal_id}/confirm",
                json={"chosen_date": "2025-06-12", "chosen_option": 2, "chosen_time": "10:00"},
            )
            appointments = await client.get("/api/scheduling/appointments")
        await dispatcher.drain()

        assert created.status_code == 201
        assert late.status_code == 422
        assert confirmed.status_code == 200
        body = confirmed.json()
        assert body["proposal"]["status"] == "confirmado"
        assert body["appointment"]["data_hora"] == "2025-06-10T16:59:00-03:00"
        assert again.status_code == 409
        assert [a["id"] for a in appointments.json()] == [body["appointment"]["id"]]
        count = (await db_session.execute(select(func.count()).select_from(Appointment))).scalar_one()
        assert count == 1
        assert len(whatsapp_mock.sent) == 1

    async def test_malformed_time_rejected(self, build_client, make_user, make_proposal):
        cca = await make_user()
        proposal = await make_proposal()
        async with build_client(scheduling_router, user=cca) as client:
            resp = await client.post(
                f"/api/scheduling/proposals/{proposal.id}/confirm",
                json={"chosen_date": "2025-06-10", "chosen_option": 1, "chosen_time": "9h"},
            )
        assert resp.status_code == 422

    async def test_signature_before_approval_conflicts(self, build_client, whatsapp_mock, make_user, make_conformidade):
        cca = await make_user()
        conformidade = await make_conformidade(cca)
        async with build_client(
            scheduling_router, user=cca, overrides={get_whatsapp_service: lambda: whatsapp_mock}
        ) as client:
            resp = await client.post(
                "/api/scheduling/proposals",
                json=self._proposal(kind="assinatura", conformidade_id=conformidade.id),
            )
        assert resp.status_code == 409

    async def test_decision_requires_agency(self, build_client, whatsapp_mock, make_user, make_appointment):
        cca = await make_user()
        agency = await make_user(role="agencia")
        appointment = await make_appointment(cca=cca)
        overrides = {get_whatsapp_service: lambda: whatsapp_mock}

        async with build_client(scheduling_router, user=cca, overrides=overrides) as client:
            denied = await client.post(
                f"/api/scheduling/appointments/{appointment.id}/decision", json={"approved": True}
            )
        async with build_client(scheduling_router, user=agency, overrides=overrides) as client:
            decided = await client.post(
                f"/api/scheduling/appointments/{appointment.id}/decision",
                json={"approved": False, "motivo": "Renda não comprovada"},
            )
        await dispatcher.drain()

        assert denied.status_code == 403
        assert decided.status_code == 200
        assert decided.json()["status"] == "Reprovado"
        assert decided.json()["observacoes"] == "Renda não comprovada"

    async def test_cca_cannot_touch_another_ccas_records(
        self, build_client, db_session, whatsapp_mock, make_user, make_conformidade, make_proposal, make_appointment
    ):
        owner = await make_user()
        intruder = await make_user()
        conformidade = await make_conformidade(owner, entrevista_aprovada=True)
        proposal = await make_proposal(conformidade)
        appointment = await make_appointment(cca=owner)
        overrides = {get_whatsapp_service: lambda: whatsapp_mock}

        async with build_client(scheduling_router, user=intruder, overrides=overrides) as client:
            confirm = await client.post(
                f"/api/scheduling/proposals/{proposal.id}/confirm",
                json={"chosen_date": "2025-06-10", "chosen_option": 1, "chosen_time": "10:00"},
            )
            reschedule = await client.post(
                f"/api/scheduling/appointments/{appointment.id}/reschedule",
                json={"new_date": "2025-06-15", "new_time": "14:30"},
            )
            delete_proposal = await client.delete(f"/api/scheduling/proposals/{proposal.id}")
            delete_appointment = await client.delete(f"/api/scheduling/appointments/{appointment.id}")
            propose = await client.post(
                "/api/scheduling/proposals",
                json=self._proposal(kind="assinatura", conformidade_id=conformidade.id, send_invite=False),
            )

        assert confirm.status_code == 404
        assert reschedule.status_code == 404
        assert delete_proposal.status_code == 404
        assert delete_appointment.status_code == 404
        assert propose.status_code == 404

        await db_session.refresh(proposal)
        await db_session.refresh(appointment)
        assert proposal.status == "pendente"
        assert "Reagendado" not in (appointment.observacoes or "")
        count = (await db_session.execute(select(func.count()).select_from(Appointment))).scalar_one()
        assert count == 1

    async def test_agency_reaches_any_ccas_records(self, build_client, whatsapp_mock, make_user, make_appointment):
        owner = await make_user()
        agency = await make_user(role="agencia")
        appointment = await make_appointment(cca=owner)

        async with build_client(
            scheduling_router, user=agency, overrides={get_whatsapp_service: lambda: whatsapp_mock}
        ) as client:
            resp = await client.delete(f"/api/scheduling/appointments/{appointment.id}")
        assert resp.status_code == 204
