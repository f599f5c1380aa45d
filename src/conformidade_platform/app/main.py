"""FastAPI application entry point for the Conformidade Platform API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from conformidade_platform.app.config import get_settings
from conformidade_platform.infra.database import init_db
from conformidade_platform.services.notification_dispatcher import dispatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database on startup; let pending notifications finish on shutdown."""
    await init_db()
    yield
    if dispatcher.pending:
        logger.info("Waiting for %d pending notification(s)", dispatcher.pending)
    await dispatcher.drain()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Conformidade Platform API",
    lifespan=lifespan,
    debug=settings.debug,
)

_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------

from conformidade_platform.app.routes.auth import router as auth_router  # noqa: E402
from conformidade_platform.app.routes.conformidades import router as conformidades_router  # noqa: E402
from conformidade_platform.app.routes.demands import router as demands_router  # noqa: E402
from conformidade_platform.app.routes.documents import router as documents_router  # noqa: E402
from conformidade_platform.app.routes.files import router as files_router  # noqa: E402
from conformidade_platform.app.routes.inbound_email import router as inbound_email_router  # noqa: E402
from conformidade_platform.app.routes.internal import router as internal_router  # noqa: E402
from conformidade_platform.app.routes.notifications import router as notifications_router  # noqa: E402
from conformidade_platform.app.routes.scheduling import router as scheduling_router  # noqa: E402
from conformidade_platform.app.routes.tasks import router as tasks_router  # noqa: E402
from conformidade_platform.app.routes.templates import router as templates_router  # noqa: E402
from conformidade_platform.app.routes.whatsapp import router as whatsapp_router  # noqa: E402

app.include_router(auth_router)
app.include_router(conformidades_router)
app.include_router(scheduling_router)
app.include_router(demands_router)
app.include_router(tasks_router)
app.include_router(inbound_email_router)
app.include_router(whatsapp_router)
app.include_router(documents_router)
app.include_router(templates_router)
app.include_router(notifications_router)
app.include_router(files_router)
app.include_router(internal_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "conformidade-platform"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "conformidade_platform.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
