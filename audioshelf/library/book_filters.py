"""Translate ``(group, value)`` filter selectors into book query predicates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from .. import logging_manager
from ..config_manager import DEFAULT_RECENT_DAYS
from ..database.base import utcnow
from ..database.predicates import (
    Compare,
    HasRelation,
    JsonArrayAnyFlag,
    JsonArrayEmpty,
    JsonArrayLength,
    JsonArrayMatchCount,
    NotNull,
    NullOr,
    NullOrEmpty,
    Param,
    Predicate,
    all_of,
    any_of,
)

logger = logging_manager.get_logger().getChild("library.filters")

FILTER_VALUE = "filterValue"

PROGRESS_VALUES = (
    "not-finished",
    "not-started",
    "finished",
    "in-progress",
    "audio-in-progress",
    "ebook-in-progress",
    "ebook-finished",
)
COLLAPSE_PROGRESS_VALUES = ("not-finished", "not-started", "finished", "in-progress")

BOOK_FILTER_GROUPS = frozenset(
    {
        "progress",
        "series",
        "abridged",
        "genres",
        "tags",
        "narrators",
        "publishers",
        "languages",
        "tracks",
        "ebooks",
        "missing",
        "authors",
        "issues",
        "feed-open",
        "recent",
    }
)

_ARRAY_GROUPS = {"genres": "media.genres", "tags": "media.tags", "narrators": "media.narrators"}
_MISSING_SCALARS = {
    "asin": "media.asin",
    "isbn": "media.isbn",
    "subtitle": "media.subtitle",
    "publishedYear": "media.published_year",
    "publishedDate": "media.published_date",
    "publisher": "media.publisher",
    "description": "media.description",
    "language": "media.language",
    "cover": "media.cover_path",
}
_MISSING_ARRAYS = {
    "genres": "media.genres",
    "tags": "media.tags",
    "narrator": "media.narrators",
    "narrators": "media.narrators",
}


@dataclass(frozen=True)
class MediaFilter:
    """Predicates and bound parameters produced for one filter selector.

    Shared by book and podcast libraries; the series and author hints are
    only set for books.
    """

    group: Optional[str] = None
    value: Optional[str] = None
    media_predicates: Tuple[Predicate, ...] = ()
    item_predicates: Tuple[Predicate, ...] = ()
    parameters: Dict[str, Any] = field(default_factory=dict)
    join_progress: bool = False
    series_id: Optional[str] = None
    author_id: Optional[str] = None

    @property
    def predicates(self) -> Tuple[Predicate, ...]:
        return self.item_predicates + self.media_predicates


def _progress_predicate(value: str) -> Optional[Predicate]:
    not_finished = Compare("progress.is_finished", "==", False)
    if value == "not-finished":
        return NullOr("progress.is_finished", False)
    if value == "not-started":
        return all_of(NullOr("progress.current_time", 0), NullOr("progress.is_finished", False))
    if value == "finished":
        return Compare("progress.is_finished", "==", True)
    if value == "in-progress":
        return all_of(
            any_of(
                Compare("progress.current_time", ">", 0),
                Compare("progress.ebook_progress", ">", 0),
            ),
            not_finished,
        )
    if value == "audio-in-progress":
        return all_of(Compare("progress.current_time", ">", 0), not_finished)
    if value == "ebook-in-progress":
        return all_of(
            JsonArrayLength("media.audio_files", "==", 0),
            Compare("progress.ebook_progress", ">", 0),
            not_finished,
        )
    if value == "ebook-finished":
        return all_of(
            JsonArrayLength("media.audio_files", "==", 0),
            Compare("progress.is_finished", "==", True),
            NotNull("media.ebook_file"),
        )
    return None


def collapse_series_progress_predicate(value: Optional[str]) -> Optional[Predicate]:
    """Series-level progress predicate used while choosing collapse representatives."""

    if value not in COLLAPSE_PROGRESS_VALUES:
        return None
    return _progress_predicate(value)


def _tracks_predicate(value: str) -> Predicate:
    if value == "none":
        return JsonArrayLength("media.audio_files", "==", 0)
    if value == "multi":
        return JsonArrayLength("media.audio_files", ">", 1)
    return JsonArrayLength("media.audio_files", "==", 1)


def _missing_predicate(value: str) -> Optional[Predicate]:
    if value in _MISSING_SCALARS:
        return NullOrEmpty(_MISSING_SCALARS[value])
    if value in _MISSING_ARRAYS:
        return JsonArrayEmpty(_MISSING_ARRAYS[value])
    if value == "authors":
        return HasRelation("authors", negate=True)
    if value == "series":
        return HasRelation("series", negate=True)
    return None


def build_book_filter(
    group: Optional[str],
    value: Optional[str],
    *,
    has_user: bool = True,
    recent_days: int = DEFAULT_RECENT_DAYS,
    now: Optional[datetime] = None,
) -> MediaFilter:
    """Return the :class:`MediaFilter` for ``(group, value)``.

    Unknown groups and values leave the result unrestricted.
    """

    if not group or group == "none":
        return MediaFilter()

    media: list[Predicate] = []
    item: list[Predicate] = []
    parameters: Dict[str, Any] = {}
    join_progress = False
    series_id = None
    author_id = None

    if group == "progress":
        predicate = _progress_predicate(value) if value else None
        if predicate is not None and has_user:
            media.append(predicate)
            join_progress = True
    elif group == "series" and value == "no-series":
        media.append(HasRelation("series", negate=True))
    elif group == "series" and value:
        parameters[FILTER_VALUE] = value
        media.append(HasRelation("series", Param(FILTER_VALUE)))
        series_id = value
    elif group == "authors" and value:
        parameters[FILTER_VALUE] = value
        media.append(HasRelation("authors", Param(FILTER_VALUE)))
        author_id = value
    elif group == "abridged":
        media.append(Compare("media.abridged", "==", True))
    elif group in _ARRAY_GROUPS and value:
        parameters[FILTER_VALUE] = value
        media.append(JsonArrayMatchCount(_ARRAY_GROUPS[group], Param(FILTER_VALUE), ">=", 1))
    elif group == "publishers" and value:
        parameters[FILTER_VALUE] = value
        media.append(Compare("media.publisher", "==", Param(FILTER_VALUE)))
    elif group == "languages" and value:
        parameters[FILTER_VALUE] = value
        media.append(Compare("media.language", "==", Param(FILTER_VALUE)))
    elif group == "tracks" and value:
        media.append(_tracks_predicate(value))
    elif group == "ebooks" and value == "ebook":
        media.append(NotNull("media.ebook_file"))
    elif group == "ebooks" and value == "supplementary":
        item.append(JsonArrayAnyFlag("item.library_files", "isSupplementary"))
    elif group == "missing" and value:
        predicate = _missing_predicate(value)
        if predicate is not None:
            media.append(predicate)
    elif group == "issues":
        item.append(
            any_of(
                Compare("item.is_missing", "==", True),
                Compare("item.is_invalid", "==", True),
            )
        )
    elif group == "recent":
        since = (now or utcnow()) - timedelta(days=recent_days)
        item.append(Compare("item.created_at", ">=", since))
    elif group == "feed-open":
        item.append(HasRelation("feeds"))

    if not media and not item and not (group == "progress" and not has_user):
        logger.debug(
            "Ignoring unsupported filter selector",
            extra={"event": "library.filter.ignored", "filter_group": group, "filter_value": value},
        )

    return MediaFilter(
        group=group,
        value=value,
        media_predicates=tuple(media),
        item_predicates=tuple(item),
        parameters=parameters,
        join_progress=join_progress,
        series_id=series_id,
        author_id=author_id,
    )


__all__ = [
    "BOOK_FILTER_GROUPS",
    "COLLAPSE_PROGRESS_VALUES",
    "FILTER_VALUE",
    "MediaFilter",
    "PROGRESS_VALUES",
    "build_book_filter",
    "collapse_series_progress_predicate",
]
