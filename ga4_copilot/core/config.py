"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from ga4_copilot.core.errors import ConfigurationError

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── GA4 report backend ───────────────────────────────
    report_backend: str = "mock"  # mock | ga4
    ga4_property_id: str = ""
    ga4_credentials_json: str = ""
    google_application_credentials: str = ""
    report_timeout_seconds: float = 20.0

    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | anthropic
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-latest"
    llm_timeout_seconds: float = 30.0

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    @property
    def ga4_property(self) -> str:
        """Resource name expected by the Data API, e.g. ``properties/1234``."""
        pid = self.ga4_property_id.strip()
        if pid.startswith("properties/"):
            return pid
        return f"properties/{pid}"

    def missing_startup_config(self) -> list[str]:
        """Names of required settings that are absent for the selected backends."""
        missing: list[str] = []

        if self.report_backend.lower() == "ga4":
            if not self.ga4_property_id.strip():
                missing.append("GA4_PROPERTY_ID")
            if not (self.ga4_credentials_json.strip() or self.google_application_credentials.strip()):
                missing.append("GA4_CREDENTIALS_JSON or GOOGLE_APPLICATION_CREDENTIALS")

        provider = self.llm_provider.lower()
        if provider == "openai" and not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if provider == "anthropic" and not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")

        return missing


@lru_cache
def get_settings() -> Settings:
    return Settings()


def require_startup_config(settings: Settings | None = None) -> Settings:
    """Fail fast when the service cannot reach its backends at all.

    Raises
    ------
    ConfigurationError
        If any required credential or identifier is missing.
    """
    if settings is None:
        settings = get_settings()
    missing = settings.missing_startup_config()
    if missing:
        raise ConfigurationError(
            "Missing required configuration: " + ", ".join(missing)
        )
    return settings
