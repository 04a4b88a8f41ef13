"""High-level entry points for library listings and home shelves."""

from __future__ import annotations

import time
from contextlib import AbstractContextManager
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from .. import logging_manager
from ..config_manager import ServerSettings, get_settings
from ..database.engine import get_db_session
from ..database.models import AuthorModel, LibraryModel, SeriesModel
from ..logging_manager import log_context
from ..permissions import UserAccess, resolve_user_access
from .book_repository import BookQueryRepository
from .library_models import LibraryItemsPage, LibraryItemsQuery, Shelf
from .podcast_repository import PodcastQueryRepository
from .shelves import build_personalized_shelves

LOGGER = logging_manager.get_logger().getChild("library.service")

SessionScope = Callable[[], AbstractContextManager[Session]]


class LibraryError(RuntimeError):
    """Base class for library-related failures."""


class LibraryNotFoundError(LibraryError):
    """Raised when a requested library, series or author does not exist."""


class LibraryQueryService:
    """Coordinate filtered listings and shelves over the library store.

    Every call opens its own session; nothing is cached between calls.
    """

    def __init__(
        self,
        *,
        session_scope: SessionScope = get_db_session,
        settings: Optional[ServerSettings] = None,
    ) -> None:
        self._session_scope = session_scope
        self._settings = settings

    @property
    def settings(self) -> ServerSettings:
        return self._settings or get_settings()

    @staticmethod
    def _require_library(session: Session, library_id: str) -> LibraryModel:
        library = session.get(LibraryModel, library_id)
        if library is None:
            raise LibraryNotFoundError(f"Library {library_id} not found")
        return library

    @staticmethod
    def _normalize_include(include: Iterable[str]) -> tuple[str, ...]:
        return tuple(value.strip().lower() for value in include if value and value.strip())

    def get_filtered_library_items(
        self,
        library_id: str,
        user: Any = None,
        *,
        filter_group: Optional[str] = None,
        filter_value: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_desc: bool = False,
        collapse_series: bool = False,
        include: Iterable[str] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> LibraryItemsPage:
        """Return one page of library items matching the filter selector.

        ``user`` may be a stored user row, a :class:`UserAccess` or ``None``
        for an unrestricted system query.  Series collapsing applies to book
        libraries only.
        """

        access = resolve_user_access(user)
        include = self._normalize_include(include)
        started = time.perf_counter()
        with log_context(library_id=library_id, user_id=access.id if access else None):
            with self._session_scope() as session:
                library = self._require_library(session, library_id)
                if library.is_podcast:
                    page = PodcastQueryRepository(session, self.settings).get_filtered_library_items(
                        library_id,
                        access,
                        filter_group=filter_group,
                        filter_value=filter_value,
                        sort_by=sort_by,
                        sort_desc=sort_desc,
                        include=include,
                        limit=limit,
                        offset=offset,
                    )
                else:
                    page = BookQueryRepository(session, self.settings).get_filtered_library_items(
                        library_id,
                        access,
                        filter_group=filter_group,
                        filter_value=filter_value,
                        sort_by=sort_by,
                        sort_desc=sort_desc,
                        collapse_series=collapse_series,
                        include=include,
                        limit=limit,
                        offset=offset,
                    )
            LOGGER.debug(
                "Filtered library items",
                extra={
                    "event": "library.items.query",
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "count": page.count,
                },
            )
        return page

    def get_library_items(
        self, library_id: str, query: LibraryItemsQuery, user: Any = None
    ) -> LibraryItemsPage:
        """Run a listing described by raw request options."""

        return self.get_filtered_library_items(
            library_id,
            user,
            filter_group=query.filter_group,
            filter_value=query.filter_value,
            sort_by=query.sort,
            sort_desc=query.desc,
            collapse_series=query.collapse_series,
            include=query.include,
            limit=query.limit,
            offset=query.offset,
        )

    def get_personalized_shelves(
        self,
        library_id: str,
        user: Any = None,
        *,
        include: Iterable[str] = (),
        limit: Optional[int] = None,
    ) -> List[Shelf]:
        access = resolve_user_access(user)
        settings = self.settings
        with log_context(library_id=library_id, user_id=access.id if access else None):
            with self._session_scope() as session:
                library = self._require_library(session, library_id)
                return build_personalized_shelves(
                    library,
                    access,
                    books=BookQueryRepository(session, settings),
                    podcasts=PodcastQueryRepository(session, settings),
                    include=self._normalize_include(include),
                    limit=limit or settings.default_shelf_limit,
                    recent_series_limit=settings.recent_series_limit,
                )

    def get_library_items_for_series(
        self, series_id: str, user: Any = None, *, include: Iterable[str] = ()
    ) -> LibraryItemsPage:
        access = resolve_user_access(user)
        with self._session_scope() as session:
            series = session.get(SeriesModel, series_id)
            if series is None:
                raise LibraryNotFoundError(f"Series {series_id} not found")
            return BookQueryRepository(session, self.settings).get_library_items_for_series(
                series, access, include=self._normalize_include(include)
            )

    def get_library_items_for_author(
        self,
        author_id: str,
        user: Any = None,
        *,
        include: Iterable[str] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> LibraryItemsPage:
        access = resolve_user_access(user)
        with self._session_scope() as session:
            author = session.get(AuthorModel, author_id)
            if author is None:
                raise LibraryNotFoundError(f"Author {author_id} not found")
            return BookQueryRepository(session, self.settings).get_library_items_for_author(
                author,
                access,
                include=self._normalize_include(include),
                limit=limit,
                offset=offset,
            )

    def get_library_items_for_collection(
        self,
        library_item_ids: Sequence[str],
        user: Any = None,
        *,
        include: Iterable[str] = (),
    ) -> List[Dict[str, Any]]:
        access = resolve_user_access(user)
        with self._session_scope() as session:
            return BookQueryRepository(session, self.settings).get_library_items_for_collection(
                library_item_ids, access, include=self._normalize_include(include)
            )


@lru_cache
def get_library_query_service() -> LibraryQueryService:
    """Return the shared :class:`LibraryQueryService` instance."""

    return LibraryQueryService()


__all__ = [
    "LibraryError",
    "LibraryNotFoundError",
    "LibraryQueryService",
    "UserAccess",
    "get_library_query_service",
]
