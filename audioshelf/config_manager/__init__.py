"""Runtime configuration for audioshelf."""
from __future__ import annotations

from .settings import (
    DEFAULT_RECENT_DAYS,
    DEFAULT_RECENT_SERIES_LIMIT,
    DEFAULT_SHELF_LIMIT,
    ServerSettings,
    get_settings,
    reset_settings,
)

__all__ = [
    "DEFAULT_RECENT_DAYS",
    "DEFAULT_RECENT_SERIES_LIMIT",
    "DEFAULT_SHELF_LIMIT",
    "ServerSettings",
    "get_settings",
    "reset_settings",
]
