"""Shared test infrastructure for the conformidade platform test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- whatsapp_mock: mock WhatsAppService capturing outbound messages
- email_mock: patches email_service.send_email and records calls
- make_user / make_conformidade / make_proposal / make_appointment /
  make_demand / make_task: row factories
- build_client: httpx client for a minimal app with selected routers
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conformidade_platform.infra.database import Base

# Import the models so their tables are registered with Base.metadata
import conformidade_platform.domain.models  # noqa: F401

from conformidade_platform.app.config import get_settings
from conformidade_platform.domain.models import (
    Appointment,
    Conformidade,
    Demand,
    DistributedTask,
    SchedulingProposal,
    User,
)
from conformidade_platform.services.auth_service import create_access_token
from conformidade_platform.services.notification_dispatcher import dispatcher


VALID_CPF = "52998224725"
OTHER_VALID_CPF = "11144477735"


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(autouse=True)
async def drain_notifications():
    """Let detached notification tasks finish inside the test that spawned them."""
    yield
    await dispatcher.drain()


@pytest.fixture
def storage_dir(tmp_path, monkeypatch):
    """Point file storage at a temporary directory."""
    monkeypatch.setattr(get_settings(), "storage_dir", str(tmp_path))
    return tmp_path


# ---------------------------------------------------------------------------
# External service mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def whatsapp_mock():
    """Mock WhatsAppService that captures outbound messages.

    ``.sent`` collects ``(phone_or_chat_id, message)`` tuples.
    """
    mock = MagicMock()
    mock.sent = []

    async def _capture(target: str, message: str):
        mock.sent.append((target, message))
        return {"ok": True, "chat_id": target, "message_id": "wa-1"}

    mock.send_message = AsyncMock(side_effect=_capture)
    mock.send_message_to_chat = AsyncMock(side_effect=_capture)
    return mock


@pytest.fixture
def email_mock():
    """Patch ``email_service.send_email``; ``.sent`` collects the keyword arguments."""
    sent = []

    async def _capture(to, subject, html, reply_to=None, attachments=None):
        sent.append(
            {"to": to, "subject": subject, "html": html, "reply_to": reply_to, "attachments": attachments}
        )
        return {"ok": True, "message_id": f"msg-{len(sent)}"}

    with patch(
        "conformidade_platform.services.email_service.send_email",
        new=AsyncMock(side_effect=_capture),
    ) as mock:
        mock.sent = sent
        yield mock


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory that creates a User row.

    Usage:
        cca = await make_user(role="cca", email_preferencia="cca@test.com")
    """
    async def _factory(
        role: str = "cca",
        full_name: str = "Maria Silva",
        email: str | None = None,
        email_preferencia: str | None = None,
        phone: str | None = "11987654321",
        codigo_cca: str | None = "CCA001",
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"{uuid.uuid4().hex[:8]}@test.com",
            password_hash="not-a-real-hash",
            full_name=full_name,
            role=role,
            phone=phone,
            codigo_cca=codigo_cca,
            email_preferencia=email_preferencia,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _factory


@pytest.fixture
def make_conformidade(db_session):
    async def _factory(
        cca: User,
        cpf: str = VALID_CPF,
        modalidade: str = "SBPE",
        entrevista_aprovada: bool = False,
        valor_financiamento: Decimal = Decimal("350000.00"),
    ) -> Conformidade:
        conformidade = Conformidade(
            id=str(uuid.uuid4()),
            cca_user_id=cca.id,
            codigo_cca=cca.codigo_cca or "",
            cpf=cpf,
            valor_financiamento=valor_financiamento,
            modalidade=modalidade,
            tipo_contrato="individual",
            entrevista_aprovada=entrevista_aprovada,
        )
        db_session.add(conformidade)
        await db_session.flush()
        return conformidade

    return _factory


@pytest.fixture
def make_proposal(db_session):
    """Factory for a pending interview proposal on 2025-06-10 / 2025-06-12, 09:00-17:00."""
    async def _factory(
        conformidade: Conformidade | None = None,
        kind: str = "entrevista",
        telefone: str = "5511999990000",
        status: str = "pendente",
        **overrides,
    ) -> SchedulingProposal:
        values = dict(
            id=str(uuid.uuid4()),
            kind=kind,
            conformidade_id=conformidade.id if conformidade else None,
            cca_user_id=conformidade.cca_user_id if conformidade else None,
            cliente_nome="João Souza",
            telefone=telefone,
            chat_id=f"{telefone}@c.us",
            data_opcao_1=date(2025, 6, 10),
            data_opcao_2=date(2025, 6, 12),
            horario_inicio="09:00",
            horario_fim="17:00",
            modalidade_financiamento="SBPE",
            endereco_agencia="Avenida Barao Do Rio Branco, 2340",
            status=status,
        )
        values.update(overrides)
        proposal = SchedulingProposal(**values)
        db_session.add(proposal)
        await db_session.flush()
        return proposal

    return _factory


@pytest.fixture
def make_appointment(db_session):
    async def _factory(
        tipo: str = "entrevista",
        cca: User | None = None,
        cpf: str | None = VALID_CPF,
        data_hora: str = "2025-06-10T10:00:00-03:00",
        **overrides,
    ) -> Appointment:
        values = dict(
            id=str(uuid.uuid4()),
            tipo=tipo,
            cca_user_id=cca.id if cca else None,
            cpf=cpf,
            cliente_nome="João Souza",
            telefone_cliente="5511999990000",
            data_hora=data_hora,
            status="Agendado",
        )
        values.update(overrides)
        appointment = Appointment(**values)
        db_session.add(appointment)
        await db_session.flush()
        return appointment

    return _factory


@pytest.fixture
def make_demand(db_session):
    async def _factory(
        cca: User,
        type: str = "autoriza_reavaliacao",
        status: str = "pendente",
        **overrides,
    ) -> Demand:
        values = dict(
            id=str(uuid.uuid4()),
            cca_user_id=cca.id,
            codigo_cca=cca.codigo_cca or "",
            type=type,
            cpf=VALID_CPF,
            matricula="12345",
            description="Reavaliar imóvel",
            status=status,
        )
        values.update(overrides)
        demand = Demand(**values)
        db_session.add(demand)
        await db_session.flush()
        return demand

    return _factory


@pytest.fixture
def make_task(db_session):
    async def _factory(
        referencia_id: str,
        user: User | None = None,
        tipo_tarefa: str = "demanda",
        status: str = "em_andamento",
    ) -> DistributedTask:
        task = DistributedTask(
            id=str(uuid.uuid4()),
            tipo_tarefa=tipo_tarefa,
            referencia_id=referencia_id,
            user_id=user.id if user else None,
            status=status,
        )
        db_session.add(task)
        await db_session.flush()
        return task

    return _factory


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
def build_client(db_session):
    """Build an HTTPX AsyncClient wired to a test FastAPI app.

    Uses a fresh FastAPI app with only the given routers. ``user`` adds a
    Bearer token; ``overrides`` maps extra dependencies to replacements.

    Usage:
        async with build_client(router, user=cca) as client: ...
    """
    from conformidade_platform.infra.database import get_db

    def _build(*routers, user: User | None = None, overrides: dict | None = None) -> AsyncClient:
        test_app = FastAPI()
        for router in routers:
            test_app.include_router(router)

        async def _override_get_db():
            yield db_session

        test_app.dependency_overrides[get_db] = _override_get_db
        for dependency, replacement in (overrides or {}).items():
            test_app.dependency_overrides[dependency] = replacement

        headers = {}
        if user is not None:
            headers["Authorization"] = f"Bearer {create_access_token(user.id, user.role)}"
        return AsyncClient(
            transport=ASGITransport(app=test_app),
            base_url="http://testserver",
            headers=headers,
        )

    return _build
