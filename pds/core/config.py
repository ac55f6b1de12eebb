"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the ingestion scheduler and
the maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import os

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class _Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)


class GmailSettings(_Settings):
    """Configuration required for the Gmail OAuth flow and mailbox reads."""

    client_id: str = Field(..., validation_alias="GOOGLE_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="GOOGLE_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(
        "http://localhost:3000/api/auth/gmail/callback",
        validation_alias="GMAIL_REDIRECT_URI",
    )
    scopes: tuple[str, ...] = ("https://www.googleapis.com/auth/gmail.readonly",)


class PlaidSettings(_Settings):
    """Credentials and environment selection for the Plaid API."""

    client_id: str = Field(..., validation_alias="PLAID_CLIENT_ID")
    secret: str = Field(..., validation_alias="PLAID_SECRET")
    environment: Literal["sandbox", "development", "production"] = Field(
        "sandbox", validation_alias="PLAID_ENV"
    )
    client_name: str = Field("Personal Data Store", validation_alias="PLAID_CLIENT_NAME")
    redirect_uri: Optional[AnyHttpUrl] = Field(
        None,
        validation_alias="PLAID_REDIRECT_URI",
        description="Only required for institutions that use Plaid's OAuth flow.",
    )


class SecuritySettings(_Settings):
    """Security-related configuration."""

    encryption_key: str = Field(
        ...,
        validation_alias="ENCRYPTION_KEY",
        description="Secret used to derive the symmetric key for stored credentials.",
    )


class StorageSettings(_Settings):
    """Where credential records are persisted."""

    backend: Literal["sqlite", "dynamodb"] = Field(
        "sqlite", validation_alias="STORAGE_BACKEND"
    )
    sqlite_db_path: str = Field("data/pds.sqlite3", validation_alias="SQLITE_DB_PATH")
    dynamodb_table_name: Optional[str] = Field(
        None, validation_alias="DYNAMODB_TABLE_NAME"
    )
    region_name: str = Field("us-east-1", validation_alias="AWS_REGION")


class SchedulerSettings(_Settings):
    """Periodic ingestion configuration."""

    cron_expression: str = Field("0 2 * * *", validation_alias="SCHEDULER_CRON")
    enabled: bool = Field(True, validation_alias="SCHEDULER_ENABLED")
    run_on_startup: bool = Field(
        True,
        validation_alias="SCHEDULER_RUN_ON_STARTUP",
        description="Fire one catch-up ingestion pass shortly after start.",
    )

    @field_validator("cron_expression")
    @classmethod
    def _require_five_fields(cls, value: str) -> str:
        """Cron expressions use the classic five-field crontab format."""
        if len(value.split()) != 5:
            raise ValueError("SCHEDULER_CRON must have five space-separated fields.")
        return value


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_url: str = Field(
        "http://localhost:3001",
        validation_alias="FRONTEND_URL",
        description="Base URL of the front-end that OAuth callbacks return to.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    gmail: GmailSettings = Field(default_factory=GmailSettings)
    plaid: PlaidSettings = Field(default_factory=PlaidSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "GmailSettings",
    "PlaidSettings",
    "SchedulerSettings",
    "SecuritySettings",
    "StorageSettings",
    "get_settings",
]
