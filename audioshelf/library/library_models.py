"""Dataclasses and Pydantic schemas for library queries."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_PAGE_LIMIT = 500

_TRUTHY = {"1", "true", "yes", "on"}


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def decode_filter(raw: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split a ``group.<base64 value>`` filter string into its parts.

    Values that do not decode are returned as ``None`` so the group is
    later treated as unrestricted.
    """

    if not raw:
        return None, None
    group, _, encoded = raw.partition(".")
    group = group.strip() or None
    if not encoded:
        return group, None
    try:
        decoded = base64.b64decode(encoded, validate=False).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return group, None
    return group, unquote(decoded) or None


def encode_filter(group: str, value: str) -> str:
    return f"{group}.{base64.b64encode(value.encode('utf-8')).decode('ascii')}"


class LibraryItemsQuery(BaseModel):
    """Raw listing options as received from a request query string."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    filter: Optional[str] = None
    sort: Optional[str] = None
    desc: bool = False
    collapse_series: bool = Field(default=False, alias="collapseseries")
    include: Tuple[str, ...] = ()
    limit: Optional[int] = None
    page: int = 0

    @field_validator("desc", "collapse_series", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        return _is_truthy(value)

    @field_validator("include", mode="before")
    @classmethod
    def _split_include(cls, value: Any) -> Tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            parts = value.split(",")
        else:
            parts = list(value)
        return tuple(
            part.strip().lower() for part in parts if isinstance(part, str) and part.strip()
        )

    @field_validator("limit", mode="before")
    @classmethod
    def _clamp_limit(cls, value: Any) -> Optional[int]:
        if value in (None, ""):
            return None
        try:
            limit = int(value)
        except (TypeError, ValueError):
            return None
        if limit <= 0:
            return None
        return min(limit, MAX_PAGE_LIMIT)

    @field_validator("page", mode="before")
    @classmethod
    def _non_negative_page(cls, value: Any) -> int:
        try:
            return max(0, int(value or 0))
        except (TypeError, ValueError):
            return 0

    @property
    def filter_group(self) -> Optional[str]:
        return decode_filter(self.filter)[0]

    @property
    def filter_value(self) -> Optional[str]:
        return decode_filter(self.filter)[1]

    @property
    def offset(self) -> Optional[int]:
        if not self.limit or not self.page:
            return None
        return self.page * self.limit


@dataclass(frozen=True)
class LibraryItemsPage:
    """One page of projected library items and the unpaged total."""

    items: List[Dict[str, Any]]
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"items": list(self.items), "count": self.count}


@dataclass(frozen=True)
class EntityPage:
    """Page of non-item shelf entities (series, authors) with the unpaged total."""

    entities: List[Dict[str, Any]]
    count: int


@dataclass(frozen=True)
class ProgressEntry:
    """Projected item carrying the user's progress state for shelf splitting."""

    item: Dict[str, Any]
    ebook_only: bool = False


@dataclass(frozen=True)
class Shelf:
    id: str
    label: str
    label_string_key: str
    type: str
    entities: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "labelStringKey": self.label_string_key,
            "type": self.type,
            "entities": list(self.entities),
            "total": self.total,
        }


__all__ = [
    "EntityPage",
    "LibraryItemsPage",
    "LibraryItemsQuery",
    "MAX_PAGE_LIMIT",
    "ProgressEntry",
    "Shelf",
    "decode_filter",
    "encode_filter",
]
