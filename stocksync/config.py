"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "staging" | "prod"
ENV = os.getenv("APP_ENV", "dev").lower()

SUPPORTED_ENVS = {"dev", "local", "test", "staging", "prod"}


class Settings(BaseSettings):
    """Environment configuration for the stocksync service."""

    app_env: str = ENV
    database_url: str = "sqlite:///stocksync.db"
    shopify_webhook_secret: str | None = None
    webhook_processor_secret: str | None = None
    LOG_LEVEL: str = "INFO"
    ALLOW_DB_CREATE_ALL: bool = False
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = False

    # --- Intake ----------------------------------------------------------
    WEBHOOK_RATE_LIMIT: int = 120
    WEBHOOK_RATE_WINDOW_SECONDS: int = 60

    # --- Job queue -------------------------------------------------------
    JOB_MAX_ATTEMPTS: int = 8
    JOB_LEASE_TTL_SECONDS: int = 900

    # --- Workers ---------------------------------------------------------
    WORKER_ENABLED: bool = False
    WORKER_BATCH_SIZE: int = 10
    WORKER_COUNT: int = 2
    WORKER_POLL_SECONDS: float = 5.0

    # --- Order snapshots -------------------------------------------------
    DEFAULT_CURRENCY: str = "GBP"

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("shopify_webhook_secret", "webhook_processor_secret")
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty secrets to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("WORKER_BATCH_SIZE")
    @classmethod
    def _clamp_batch_size(cls, value: int) -> int:
        return max(0, min(100, value))


class AppInfo(BaseModel):
    name: str = "stocksync"
    version: str = "0.1.0"


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()


__all__ = [
    "ENV",
    "SUPPORTED_ENVS",
    "Settings",
    "AppInfo",
    "get_settings",
]
