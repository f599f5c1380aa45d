"""Template rendering, validation and lookups, plus the pt-BR formatting helpers."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from conformidade_platform.app.routes.templates import router
from conformidade_platform.domain.models import WhatsAppTemplate
from conformidade_platform.services.formatting import (
    format_brl,
    format_date_br,
    format_date_long,
    format_datetime_br,
)
from conformidade_platform.services.templates import (
    extract_variables,
    list_whatsapp_templates,
    render,
    render_whatsapp,
    validate_template,
)


class TestRender:
    def test_replaces_every_occurrence(self):
        assert render("{{nome}} e {{nome}}", {"nome": "Ana"}) == "Ana e Ana"

    def test_unknown_placeholder_kept(self):
        assert render("Olá {{nome}}, CPF {{cpf}}", {"nome": "Ana"}) == "Olá Ana, CPF {{cpf}}"

    def test_none_renders_empty(self):
        assert render("[{{obs}}]", {"obs": None}) == "[]"


class TestValidate:
    def test_valid(self):
        assert validate_template("Olá {{nome}}, seu CPF é {{cpf}}") == (True, [])

    def test_unclosed(self):
        valid, errors = validate_template("Olá {{nome")
        assert not valid
        assert "Variáveis não fechadas corretamente. Use {{variavel}}" in errors

    def test_single_braces(self):
        valid, errors = validate_template("Olá {nome}")
        assert not valid
        assert errors == ["Sintaxe de variável inválida. Use {{variavel}} com duas chaves"]

    def test_extract_variables_in_order(self):
        assert extract_variables("{{b}} {{a}} {{b}} {{c_1}}") == ["b", "a", "c_1"]


class TestFormatting:
    def test_long_date(self):
        assert format_date_long(date(2025, 6, 10)) == "terça-feira, 10 de junho de 2025"

    def test_short_forms(self):
        assert format_date_br(date(2025, 3, 1)) == "01/03/2025"
        assert format_date_br(None) == ""
        assert format_datetime_br(datetime(2025, 6, 10, 14, 30)) == "10/06/2025 às 14:30"

    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("350000"), "R$ 350.000,00"),
            (Decimal("1234.5"), "R$ 1.234,50"),
            (0, "R$ 0,00"),
            (None, "R$ 0,00"),
        ],
    )
    def test_brl(self, value, expected):
        assert format_brl(value) == expected


class TestLookups:
    async def test_render_whatsapp_prefers_stored_template(self, db_session):
        db_session.add(WhatsAppTemplate(template_key="lembrete", name="Lembrete", message="Oi {{nome_cliente}}!"))
        await db_session.flush()

        assert await render_whatsapp(db_session, "lembrete", {"nome_cliente": "João"}, "fallback") == "Oi João!"
        assert await render_whatsapp(db_session, "ausente", {}, "fallback") == "fallback"

    async def test_demand_type_listing_includes_all(self, db_session):
        db_session.add_all(
            [
                WhatsAppTemplate(template_key="a", name="A", message="a", demand_type="outras"),
                WhatsAppTemplate(template_key="b", name="B", message="b", demand_type="all"),
                WhatsAppTemplate(template_key="c", name="C", message="c", demand_type="vincula_imovel"),
            ]
        )
        await db_session.flush()

        templates = await list_whatsapp_templates(db_session, "outras")
        assert {t.template_key for t in templates} == {"a", "b"}


class TestTemplateRoutes:
    async def test_preview_uses_sample_data(self, build_client, make_user):
        agency = await make_user(role="agencia")
        async with build_client(router, user=agency) as client:
            resp = await client.post(
                "/api/templates/preview",
                json={"text": "CPF {{cpf}} de {{nome_cca}}", "variables": {"nome_cca": "Ana"}},
            )
        assert resp.status_code == 200
        body = resp.json()
        assert body["valid"] is True
        assert body["variables"] == ["cpf", "nome_cca"]
        assert body["preview"] == "CPF 123.456.789-09 de Ana"

    async def test_create_rejects_bad_syntax(self, build_client, make_user):
        agency = await make_user(role="agencia")
        async with build_client(router, user=agency) as client:
            resp = await client.post(
                "/api/templates/whatsapp",
                json={"template_key": "x", "name": "X", "message": "Olá {nome}"},
            )
        assert resp.status_code == 422

    async def test_duplicate_key_conflicts(self, build_client, make_user):
        agency = await make_user(role="agencia")
        payload = {"template_key": "task_demanda", "name": "Demanda", "subject": "{{cpf}}", "body": "<p>ok</p>"}
        async with build_client(router, user=agency) as client:
            first = await client.post("/api/templates/email", json=payload)
            second = await client.post("/api/templates/email", json=payload)
        assert first.status_code == 201
        assert second.status_code == 409

    async def test_cca_forbidden(self, build_client, make_user):
        cca = await make_user()
        async with build_client(router, user=cca) as client:
            resp = await client.get("/api/templates/email")
        assert resp.status_code == 403
