"""Async engine, session factory and schema bootstrap.

Besides request handlers, sessions are opened by detached work: agent
activity logs and the reminder run. On SQLite each of those is a separate
connection competing for the single writer, so every connection gets WAL
and a busy timeout when it is opened rather than once at startup.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from conformidade_platform.app.config import get_settings

SQLITE_BUSY_TIMEOUT_MS = 30_000


class Base(DeclarativeBase):
    """Declarative base shared by every table in ``domain.models``."""
    pass


def apply_sqlite_pragmas(dbapi_connection, _record=None):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


settings = get_settings()

_is_sqlite = settings.database_url.startswith("sqlite")

if _is_sqlite:
    engine = create_async_engine(
        settings.database_url,
        connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_MS / 1000},
    )
    event.listen(engine.sync_engine, "connect", apply_sqlite_pragmas)
else:
    engine = create_async_engine(settings.database_url, pool_size=5, max_overflow=10, pool_pre_ping=True)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency: one session per request, closed afterwards."""
    async with async_session() as session:
        yield session


async def init_db():
    """Create missing tables. Existing tables are left as they are."""
    import conformidade_platform.domain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
