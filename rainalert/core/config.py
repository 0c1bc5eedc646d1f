"""Application configuration using Pydantic Settings v2.

Loads configuration from environment variables with .env file support.
All settings are validated at startup and available as typed attributes.
"""

from __future__ import annotations

import functools
import json
from typing import Annotated, Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_str_list(v: Any, default: list[str]) -> list[str]:
    """Parse a list setting from a JSON array string, a comma list, or a list."""
    if isinstance(v, str):
        try:
            parsed = json.loads(v)
            if isinstance(parsed, list):
                return [str(item) for item in parsed]
        except (json.JSONDecodeError, TypeError):
            return [item.strip() for item in v.split(",") if item.strip()]
    if isinstance(v, list):
        return [str(item) for item in v]
    return default


class Settings(BaseSettings):
    """RainAlert application settings.

    Configuration is loaded from environment variables.
    A .env file in the project root is also read if present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────────
    app_name: str = "RainAlert"
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ── PostgreSQL ───────────────────────────────────────────────
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "rainalert"
    postgres_user: str = "rainalert"
    postgres_password: str = "rainalert_dev_password"
    database_url: str | None = None
    # Evaluation cycles hold one connection each; the scheduler, ingest and
    # manual triggers are serialized, so a small pool is enough.
    database_pool_size: int = 5
    database_max_overflow: int = 5

    # ── Redis ────────────────────────────────────────────────────
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_url: str | None = None

    # ── Backend ──────────────────────────────────────────────────
    backend_host: str = "0.0.0.0"  # noqa: S104 - intentional for container deployments  # nosec B104
    backend_port: int = 8000
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:3000"]

    # ── Rate Limiting ─────────────────────────────────────────────
    # Sensors post roughly once per second, so the per-IP budget is generous.
    rate_limit_requests: int = 600
    rate_limit_window_seconds: int = 60

    # ── Alert Store ───────────────────────────────────────────────
    alert_store_backend: str = "sql"  # "sql" | "memory"

    # ── Alert Evaluation ─────────────────────────────────────────
    evaluation_grace_period_seconds: int = 300
    evaluation_max_active_alerts: int = 2
    evaluation_timeout_seconds: float = 5.0
    evaluation_interval_seconds: float = 1.0
    evaluation_scheduler_enabled: bool = True

    # ── Push Notifications ───────────────────────────────────────
    push_service_url: str = ""
    push_timeout_seconds: float = 10.0
    push_max_retries: int = 2
    push_auto_recipients: Annotated[list[str], NoDecode] = []

    # ── Dashboard ────────────────────────────────────────────────
    display_unit: str = "ft"  # "ft" | "cm"
    ws_heartbeat_interval: int = 30

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from JSON string or list."""
        return _parse_str_list(v, ["http://localhost:3000"])

    @field_validator("push_auto_recipients", mode="before")
    @classmethod
    def parse_push_recipients(cls, v: Any) -> list[str]:
        """Parse automatic push recipients from JSON string or list."""
        return _parse_str_list(v, [])

    @field_validator("alert_store_backend")
    @classmethod
    def check_store_backend(cls, v: str) -> str:
        if v not in ("sql", "memory"):
            raise ValueError("alert_store_backend must be 'sql' or 'memory'")
        return v

    @field_validator("display_unit")
    @classmethod
    def check_display_unit(cls, v: str) -> str:
        if v not in ("ft", "cm"):
            raise ValueError("display_unit must be 'ft' or 'cm'")
        return v

    @model_validator(mode="after")
    def build_derived_urls(self) -> Settings:
        """Build database_url and redis_url from components if not set."""
        if not self.database_url:
            self.database_url = (
                f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )
        if not self.redis_url:
            self.redis_url = f"redis://{self.redis_host}:{self.redis_port}/0"
        return self


@functools.lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""
    return Settings()
