"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library defaults, overridable through ``SIEVEQL_*`` environment variables.

    Attributes:
        default_dialect: Dialect used when a caller does not name one.
        default_limit: LIMIT applied when pagination is requested without a
            usable ``limit``.
        default_offset: OFFSET applied when pagination is requested without a
            usable ``offset``.
        log_level: Level passed to :func:`sieveql.log.configure_logging`.
        log_format: Renderer used by :func:`sieveql.log.configure_logging`.
    """

    model_config = SettingsConfigDict(
        env_prefix="SIEVEQL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_dialect: Literal["postgres", "mysql"] = "postgres"
    default_limit: int = Field(default=20, ge=0)
    default_offset: int = Field(default=0, ge=0)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
