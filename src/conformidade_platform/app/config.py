"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./conformidade.db"

    # Auth / JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Outbound e-mail (SendGrid)
    sendgrid_api_key: str = ""
    email_from: str = "tarefas@manchester.com.br"
    email_from_name: str = "Sistema de Tarefas"

    # Inbound e-mail (reply-to aliases tarefa-<id>@<domain>)
    inbound_email_domain: str = "inbound.manchester.com.br"
    inbound_api_url: str = "https://api.resend.com/emails/receiving"
    inbound_api_key: str = ""
    inbound_webhook_secret: str = ""

    # WhatsApp gateway (Green API)
    greenapi_base_url: str = "https://api.green-api.com"
    greenapi_instance_id: str = ""
    greenapi_token: str = ""
    whatsapp_test_phone: str = ""

    # AI
    gemini_api_key: str = ""
    extraction_model_name: str = "gemini-2.5-pro"
    text_model_name: str = "gemini-2.5-flash"

    # Agency
    agency_name: str = "Manchester"
    agency_address: str = "Avenida Barao Do Rio Branco, 2340"
    company_name: str = "Manchester Financeira"

    # File storage / signed links
    storage_dir: str = "./storage"
    public_base_url: str = "http://localhost:8000"
    signed_link_ttl_days: int = 7
    attachment_max_bytes: int = 10 * 1024 * 1024

    # Reminders
    reminder_after_hours: int = 24
    reminder_send_interval_seconds: float = 1.0

    # Internal cron endpoints
    internal_token: str = "change-me-internal"

    # CORS / general
    cors_origins: str = "http://localhost:5173"
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def greenapi_configured(self) -> bool:
        return bool(self.greenapi_instance_id and self.greenapi_token)


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
