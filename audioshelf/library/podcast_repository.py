"""SQLAlchemy queries behind podcast listings and episode shelves."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Select, and_, func, select
from sqlalchemy.orm import Session, selectinload

from .. import logging_manager
from ..config_manager import ServerSettings, get_settings
from ..database.models import (
    LibraryItemModel,
    MediaProgressModel,
    PodcastEpisodeModel,
    PodcastModel,
)
from ..database.predicates import Compare, Predicate, QueryScope, all_of
from ..permissions import UserAccess, user_permission_predicates
from .library_models import EntityPage, LibraryItemsPage, ProgressEntry
from .podcast_filters import NUM_EPISODES, build_podcast_filter, resolve_podcast_sort_terms
from .projection import project_podcast_item, to_millis
from .sorting import order_clauses

logger = logging_manager.get_logger().getChild("library.podcasts")

_EPISODE_IN_PROGRESS = all_of(
    Compare("progress.current_time", ">", 0),
    Compare("progress.is_finished", "==", False),
    Compare("progress.hide_from_continue_listening", "==", False),
)
_EPISODE_FINISHED = Compare("progress.is_finished", "==", True)


def _join_podcast_items(stmt: Select, library_id: str) -> Select:
    return stmt.join(
        LibraryItemModel,
        and_(
            LibraryItemModel.media_id == PodcastModel.id,
            LibraryItemModel.media_type == "podcast",
        ),
    ).where(LibraryItemModel.library_id == library_id)


class PodcastQueryRepository:
    """Run podcast listing queries inside one caller-owned session."""

    def __init__(self, session: Session, settings: Optional[ServerSettings] = None) -> None:
        self._session = session
        self._settings = settings or get_settings()

    @staticmethod
    def _load_options() -> Tuple[Any, ...]:
        return (
            selectinload(PodcastModel.library_item).selectinload(LibraryItemModel.feeds),
            selectinload(PodcastModel.episodes),
        )

    def get_filtered_library_items(
        self,
        library_id: str,
        user: Optional[UserAccess] = None,
        *,
        filter_group: Optional[str] = None,
        filter_value: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_desc: bool = False,
        include: Iterable[str] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> LibraryItemsPage:
        podcast_filter = build_podcast_filter(
            filter_group, filter_value, recent_days=self._settings.recent_days
        )
        permission = user_permission_predicates(user)
        scope = QueryScope(
            media=PodcastModel,
            item=LibraryItemModel,
            parameters={**podcast_filter.parameters, **permission.parameters},
        )
        stmt = _join_podcast_items(select(PodcastModel), library_id).where(
            *scope.compile([*podcast_filter.predicates, *permission.predicates])
        )

        counted = stmt.with_only_columns(PodcastModel.id).order_by(None)
        count = int(self._session.scalar(select(func.count()).select_from(counted.subquery())) or 0)

        terms = resolve_podcast_sort_terms(
            sort_by, sort_desc, ignore_prefix=self._settings.sorting_ignore_prefix
        )
        synthesized: Dict[str, Any] = {}
        if any(term.key == NUM_EPISODES for term in terms):
            synthesized[NUM_EPISODES] = (
                select(func.count(PodcastEpisodeModel.id))
                .where(PodcastEpisodeModel.podcast_id == PodcastModel.id)
                .scalar_subquery()
            )
        order = order_clauses(terms, scope, synthesized)
        if order:
            order.append(PodcastModel.id)
        stmt = stmt.order_by(*order).options(*self._load_options())
        if limit:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        include_rss_feed = filter_group == "feed-open" or "rssfeed" in set(include)
        items = [
            project_podcast_item(podcast, include_rss_feed=include_rss_feed)
            for podcast in self._session.scalars(stmt).all()
        ]
        logger.debug(
            "Loaded %d of %d podcasts",
            len(items),
            count,
            extra={"event": "library.podcasts.filtered", "filter_group": filter_group},
        )
        return LibraryItemsPage(items, count)

    def get_recently_added(
        self,
        library_id: str,
        user: Optional[UserAccess],
        *,
        include: Iterable[str] = (),
        limit: int = 10,
    ) -> LibraryItemsPage:
        return self.get_filtered_library_items(
            library_id,
            user,
            filter_group="recent",
            sort_by="addedAt",
            sort_desc=True,
            include=include,
            limit=limit,
        )

    def _episode_statement(self, library_id: str, user: Optional[UserAccess]) -> Tuple[Select, QueryScope]:
        permission = user_permission_predicates(user)
        scope = QueryScope(media=PodcastModel, item=LibraryItemModel, parameters=permission.parameters)
        stmt = _join_podcast_items(
            select(PodcastEpisodeModel).join(
                PodcastModel, PodcastModel.id == PodcastEpisodeModel.podcast_id
            ),
            library_id,
        ).where(*scope.compile(permission.predicates))
        return stmt, scope

    def get_newest_episodes(
        self, library_id: str, user: Optional[UserAccess], *, limit: int = 10
    ) -> EntityPage:
        """Most recently published episodes with their podcast payload."""

        stmt, _ = self._episode_statement(library_id, user)
        counted = stmt.with_only_columns(PodcastEpisodeModel.id)
        count = int(self._session.scalar(select(func.count()).select_from(counted.subquery())) or 0)
        episodes = self._session.scalars(
            stmt.order_by(
                PodcastEpisodeModel.published_at.desc().nulls_last(),
                PodcastEpisodeModel.created_at.desc(),
            )
            .limit(limit)
            .options(*self._episode_options())
        ).all()
        entities = [
            project_podcast_item(episode.podcast, recent_episode=episode) for episode in episodes
        ]
        return EntityPage(entities, count)

    @staticmethod
    def _episode_options() -> Tuple[Any, ...]:
        return (
            selectinload(PodcastEpisodeModel.podcast)
            .selectinload(PodcastModel.library_item)
            .selectinload(LibraryItemModel.feeds),
            selectinload(PodcastEpisodeModel.podcast).selectinload(PodcastModel.episodes),
        )

    def _episode_progress_entries(
        self, library_id: str, user: Optional[UserAccess], state: Predicate
    ) -> List[ProgressEntry]:
        if user is None:
            return []
        stmt, scope = self._episode_statement(library_id, user)
        progress = MediaProgressModel
        stmt = stmt.join(
            progress,
            and_(
                progress.media_item_id == PodcastEpisodeModel.id,
                progress.media_item_type == "podcastEpisode",
                progress.user_id == user.id,
            ),
        )
        scope.progress = progress
        stmt = (
            stmt.where(state.compile(scope))
            .add_columns(progress.updated_at)
            .order_by(progress.updated_at.desc(), PodcastEpisodeModel.id)
            .options(*self._episode_options())
        )
        entries: List[ProgressEntry] = []
        for episode, updated_at in self._session.execute(stmt).all():
            payload = project_podcast_item(episode.podcast, recent_episode=episode)
            payload["progressLastUpdate"] = to_millis(updated_at)
            entries.append(ProgressEntry(payload))
        return entries

    def get_episodes_in_progress(
        self, library_id: str, user: Optional[UserAccess]
    ) -> List[ProgressEntry]:
        return self._episode_progress_entries(library_id, user, _EPISODE_IN_PROGRESS)

    def get_episodes_finished(
        self, library_id: str, user: Optional[UserAccess]
    ) -> List[ProgressEntry]:
        return self._episode_progress_entries(library_id, user, _EPISODE_FINISHED)


__all__ = ["PodcastQueryRepository"]
