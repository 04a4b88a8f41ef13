"""Assemble the personalized home-page shelves of a library."""

from __future__ import annotations

import time
from typing import Iterable, List, Optional, Sequence

from .. import logging_manager
from ..database.models import LibraryModel
from ..permissions import UserAccess
from .book_repository import BookQueryRepository
from .library_models import ProgressEntry, Shelf
from .podcast_repository import PodcastQueryRepository

logger = logging_manager.get_logger().getChild("library.shelves")


def _shelf_from_entries(
    shelf_id: str, label: str, key: str, shelf_type: str, entries: Sequence[ProgressEntry], limit: int
) -> Shelf:
    return Shelf(
        id=shelf_id,
        label=label,
        label_string_key=key,
        type=shelf_type,
        entities=[entry.item for entry in entries[:limit]],
        total=len(entries),
    )


def _split_by_format(entries: Iterable[ProgressEntry]) -> tuple[List[ProgressEntry], List[ProgressEntry]]:
    audio: List[ProgressEntry] = []
    ebooks: List[ProgressEntry] = []
    for entry in entries:
        (ebooks if entry.ebook_only else audio).append(entry)
    return audio, ebooks


def build_personalized_shelves(
    library: LibraryModel,
    user: Optional[UserAccess],
    *,
    books: BookQueryRepository,
    podcasts: PodcastQueryRepository,
    include: Iterable[str] = (),
    limit: int = 10,
    recent_series_limit: int = 5,
) -> List[Shelf]:
    """Return the non-empty shelves of ``library`` in display order.

    Book libraries get continue-listening/reading, continue-series,
    recently-added, recent-series, discover, listen/read-again and
    newest-authors.  Podcast libraries get continue-listening,
    newest-episodes, recently-added and listen-again.
    """

    include = tuple(include)
    is_podcast = library.is_podcast
    item_type = "episode" if is_podcast else library.media_type
    shelves: List[Shelf] = []
    started = time.perf_counter()

    if is_podcast:
        in_progress = podcasts.get_episodes_in_progress(library.id, user)
        shelves.append(
            _shelf_from_entries(
                "continue-listening", "Continue Listening", "LabelContinueListening", item_type, in_progress, limit
            )
        )
    else:
        listening, reading = _split_by_format(books.get_media_items_in_progress(library.id, user, include=include))
        shelves.append(
            _shelf_from_entries(
                "continue-listening", "Continue Listening", "LabelContinueListening", item_type, listening, limit
            )
        )
        shelves.append(
            _shelf_from_entries(
                "continue-reading", "Continue Reading", "LabelContinueReading", "book", reading, limit
            )
        )
        continue_series = books.get_continue_series_library_items(
            library.id, user, include=include, limit=limit
        )
        shelves.append(
            Shelf(
                "continue-series",
                "Continue Series",
                "LabelContinueSeries",
                "book",
                continue_series.items,
                continue_series.count,
            )
        )

    if is_podcast:
        newest = podcasts.get_newest_episodes(library.id, user, limit=limit)
        shelves.append(
            Shelf("newest-episodes", "Newest Episodes", "LabelNewestEpisodes", "episode", newest.entities, newest.count)
        )
        recent = podcasts.get_recently_added(library.id, user, include=include, limit=limit)
    else:
        recent = books.get_recently_added(library.id, user, include=include, limit=limit)
    shelves.append(
        Shelf("recently-added", "Recently Added", "LabelRecentlyAdded", library.media_type, recent.items, recent.count)
    )

    if not is_podcast:
        recent_series = books.get_series_most_recently_added(
            library.id, user, include=include, limit=recent_series_limit
        )
        shelves.append(
            Shelf(
                "recent-series",
                "Recent Series",
                "LabelRecentSeries",
                "series",
                recent_series.entities,
                recent_series.count,
            )
        )
        discover = books.get_discover_library_items(library.id, user, include=include, limit=limit)
        shelves.append(Shelf("discover", "Discover", "LabelDiscover", "book", discover.items, discover.count))

    if is_podcast:
        finished = podcasts.get_episodes_finished(library.id, user)
        shelves.append(
            _shelf_from_entries("listen-again", "Listen Again", "LabelListenAgain", item_type, finished, limit)
        )
    else:
        listened, read = _split_by_format(books.get_media_finished(library.id, user, include=include))
        shelves.append(
            _shelf_from_entries("listen-again", "Listen Again", "LabelListenAgain", item_type, listened, limit)
        )
        shelves.append(_shelf_from_entries("read-again", "Read Again", "LabelReadAgain", "book", read, limit))

        authors = books.get_newest_authors(library.id, user, limit=limit)
        shelves.append(
            Shelf("newest-authors", "Newest Authors", "LabelNewestAuthors", "authors", authors.entities, authors.count)
        )

    populated = [shelf for shelf in shelves if shelf.entities]
    logger.debug(
        "Built %d shelves",
        len(populated),
        extra={
            "event": "library.shelves.built",
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        },
    )
    return populated


__all__ = ["build_personalized_shelves"]
