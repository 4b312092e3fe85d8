"""Application configuration."""

import os

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

STORE_SUPABASE = "supabase"
STORE_MEMORY = "memory"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    admin_token: str
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    session_store: str = STORE_SUPABASE
    sessions_table: str = "sessions"
    reveal_interval_seconds: float = 5.0
    subscription_poll_seconds: float = 2.0
    max_append_attempts: int = 5
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @field_validator("session_store")
    @classmethod
    def _check_store(cls, value: str) -> str:
        return parse_store_backend(value)

    @field_validator(
        "reveal_interval_seconds", "subscription_poll_seconds", "max_append_attempts"
    )
    @classmethod
    def _check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value


def parse_store_backend(raw: str | None) -> str:
    """Normalize the session store backend name."""
    cleaned = (raw or "").strip().lower()
    if cleaned in {"", STORE_SUPABASE}:
        return STORE_SUPABASE
    if cleaned in {STORE_MEMORY, "in-memory", "inmemory"}:
        return STORE_MEMORY
    raise ValueError(f"Unknown session store: {raw}")
