"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── Postgres (shipment store) ────────────────────────
    postgres_user: str = "rules"
    postgres_password: str = "rules_pw"
    postgres_db: str = "shipments"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # ── Rule compilation (authoring time only) ───────────
    compiler_provider: str = "mock"  # mock | service | openai | anthropic
    compiler_service_url: str = ""
    compiler_service_token: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # ── Query store capabilities ─────────────────────────
    store_supports_not_in: bool = True

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"
    preview_debounce_ms: int = 500

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
