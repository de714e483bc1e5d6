"""Runtime settings, loaded from ``SHEET_SQL_*`` environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine and remote-client settings."""

    model_config = SettingsConfigDict(
        env_prefix="SHEET_SQL_",
        env_file=".env",
        extra="ignore",
    )

    # Remote endpoints
    sheets_api_url: str = "https://sheets.googleapis.com/v4"
    gviz_url: str = "https://docs.google.com/spreadsheets/d"
    request_timeout: float = Field(default=30.0, gt=0)
    access_token: str | None = None

    # Grid ranges: leading rows holding column labels rather than data
    header_rows: int = Field(default=1, ge=0)

    # Evaluation
    case_sensitive_matching: bool = False
    native_dialect_enabled: bool = True
    virtual_insert_enabled: bool = True

    log_level: str = "WARNING"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
