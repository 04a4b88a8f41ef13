"""Pydantic settings model and accessors for server-wide options."""
from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from audioshelf import logging_manager

logger = logging_manager.get_logger().getChild("config")

DEFAULT_RECENT_DAYS = 60
DEFAULT_SHELF_LIMIT = 10
DEFAULT_RECENT_SERIES_LIMIT = 5

_ACTIVE_SETTINGS: Optional["ServerSettings"] = None


class ServerSettings(BaseSettings):
    """Server options consumed by the library-query engine."""

    model_config = SettingsConfigDict(
        env_prefix="AUDIOSHELF_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    database_url: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("AUDIOSHELF_DATABASE_URL", "DATABASE_URL", "database_url"),
    )
    sorting_ignore_prefix: bool = False
    recent_days: int = DEFAULT_RECENT_DAYS
    default_shelf_limit: int = DEFAULT_SHELF_LIMIT
    recent_series_limit: int = DEFAULT_RECENT_SERIES_LIMIT

    @field_validator("recent_days", "default_shelf_limit", "recent_series_limit")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(1, int(value))


def get_settings() -> ServerSettings:
    """Return the active :class:`ServerSettings`, loading it on first use."""

    global _ACTIVE_SETTINGS
    if _ACTIVE_SETTINGS is None:
        try:
            _ACTIVE_SETTINGS = ServerSettings()
        except ValidationError as exc:
            logger.warning(
                "Invalid environment configuration detected; using defaults.",
                extra={"event": "config.env.validation_error", "error": str(exc)},
            )
            _ACTIVE_SETTINGS = ServerSettings.model_construct()
    return _ACTIVE_SETTINGS


def reset_settings(settings: Optional[ServerSettings] = None) -> None:
    """Replace (or clear) the cached settings instance."""

    global _ACTIVE_SETTINGS
    _ACTIVE_SETTINGS = settings


__all__ = [
    "DEFAULT_RECENT_DAYS",
    "DEFAULT_RECENT_SERIES_LIMIT",
    "DEFAULT_SHELF_LIMIT",
    "ServerSettings",
    "get_settings",
    "reset_settings",
]
