"""Filter and sort rules for podcast libraries."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .. import logging_manager
from ..config_manager import DEFAULT_RECENT_DAYS
from ..database.base import utcnow
from ..database.predicates import (
    Compare,
    HasRelation,
    JsonArrayMatchCount,
    Param,
    Predicate,
    any_of,
)
from .book_filters import FILTER_VALUE, MediaFilter
from .sorting import SortTerm

logger = logging_manager.get_logger().getChild("library.podcast_filters")

NUM_EPISODES = "num_episodes"

_ITEM_SORTS = {
    "addedAt": "item.created_at",
    "size": "item.size",
    "birthtimeMs": "item.birthtime",
    "mtimeMs": "item.mtime",
}


def build_podcast_filter(
    group: Optional[str],
    value: Optional[str],
    *,
    recent_days: int = DEFAULT_RECENT_DAYS,
    now: Optional[datetime] = None,
) -> MediaFilter:
    """Podcast counterpart of :func:`build_book_filter`; unknown selectors stay unrestricted."""

    if not group or group == "none":
        return MediaFilter()

    media: List[Predicate] = []
    item: List[Predicate] = []
    parameters: Dict[str, Any] = {}

    if group in ("genres", "tags") and value:
        parameters[FILTER_VALUE] = value
        media.append(JsonArrayMatchCount(f"media.{group}", Param(FILTER_VALUE), ">=", 1))
    elif group == "languages" and value:
        parameters[FILTER_VALUE] = value
        media.append(Compare("media.language", "==", Param(FILTER_VALUE)))
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
    else:
        logger.debug(
            "Ignoring unsupported podcast filter selector",
            extra={"event": "library.filter.ignored", "filter_group": group, "filter_value": value},
        )

    return MediaFilter(
        group=group,
        value=value,
        media_predicates=tuple(media),
        item_predicates=tuple(item),
        parameters=parameters,
    )


def resolve_podcast_sort_terms(
    sort_by: Optional[str], sort_desc: bool = False, *, ignore_prefix: bool = False
) -> List[SortTerm]:
    if not sort_by:
        return []
    if sort_by in _ITEM_SORTS:
        return [SortTerm(_ITEM_SORTS[sort_by], sort_desc)]
    if sort_by == "media.metadata.title":
        key = "media.title_ignore_prefix" if ignore_prefix else "media.title"
        return [SortTerm(key, sort_desc, nocase=True)]
    if sort_by == "media.metadata.author":
        return [SortTerm("media.author", sort_desc, nocase=True)]
    if sort_by == "media.numTracks":
        return [SortTerm(NUM_EPISODES, sort_desc)]
    logger.debug(
        "Ignoring unsupported podcast sort key",
        extra={"event": "library.sort.ignored", "sort_by": sort_by},
    )
    return []


__all__ = ["NUM_EPISODES", "build_podcast_filter", "resolve_podcast_sort_terms"]
