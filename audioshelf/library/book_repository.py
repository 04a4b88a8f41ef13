"""SQLAlchemy queries behind book listings and book shelves."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import Select, and_, distinct, func, or_, select
from sqlalchemy.orm import Session, aliased, selectinload

from .. import logging_manager
from ..config_manager import ServerSettings, get_settings
from ..database.models import (
    AuthorModel,
    BookAuthorModel,
    BookModel,
    BookSeriesModel,
    LibraryItemModel,
    MediaProgressModel,
    SeriesModel,
)
from ..database.predicates import (
    Compare,
    HasRelation,
    InSet,
    NotInSet,
    NullOr,
    Predicate,
    QueryScope,
    all_of,
    any_of,
    referenced_prefixes,
)
from ..permissions import PermissionClause, UserAccess, user_permission_predicates
from .book_filters import MediaFilter, build_book_filter, collapse_series_progress_predicate
from .book_query import join_book_items
from .library_models import EntityPage, LibraryItemsPage, ProgressEntry
from .projection import project_book_item, to_millis
from .series_collapse import CollapseResult, resolve_collapsed_series
from .sorting import (
    AUTHOR_NAME,
    AUTHOR_NAME_LF,
    DISPLAY_TITLE,
    SEQUENCE,
    SortTerm,
    author_name_column,
    display_title_column,
    normalize_sort,
    numeric_sequence,
    order_clauses,
    resolve_sort_terms,
    sequence_term,
    series_sequence_column,
)

logger = logging_manager.get_logger().getChild("library.books")

_NOT_STARTED = all_of(
    NullOr("progress.is_finished", False),
    NullOr("progress.current_time", 0),
)
_IN_PROGRESS = all_of(
    any_of(
        Compare("progress.current_time", ">", 0),
        Compare("progress.ebook_progress", ">", 0),
    ),
    Compare("progress.is_finished", "==", False),
    Compare("progress.hide_from_continue_listening", "==", False),
)
_FINISHED = Compare("progress.is_finished", "==", True)


def _wants_rss_feed(include: Iterable[str], filter_group: Optional[str] = None) -> bool:
    return filter_group == "feed-open" or "rssfeed" in {value.lower() for value in include}


class BookQueryRepository:
    """Run book listing queries inside one caller-owned session."""

    def __init__(self, session: Session, settings: Optional[ServerSettings] = None) -> None:
        self._session = session
        self._settings = settings or get_settings()

    @staticmethod
    def _load_options() -> Tuple[Any, ...]:
        return (
            selectinload(BookModel.library_item).selectinload(LibraryItemModel.feeds),
            selectinload(BookModel.book_authors).selectinload(BookAuthorModel.author),
            selectinload(BookModel.book_series).selectinload(BookSeriesModel.series),
        )

    def _count(self, stmt: Select) -> int:
        counted = stmt.with_only_columns(BookModel.id).order_by(None).limit(None).offset(None)
        return int(self._session.scalar(select(func.count()).select_from(counted.subquery())) or 0)

    def _book_statement(
        self,
        library_id: str,
        predicates: Sequence[Predicate],
        *,
        parameters: Optional[Dict[str, Any]] = None,
        progress_user_id: Optional[str] = None,
    ) -> Tuple[Select, QueryScope]:
        stmt, scope = join_book_items(
            select(BookModel),
            library_id,
            progress_user_id=progress_user_id,
            parameters=parameters,
        )
        return stmt.where(*scope.compile(predicates)), scope

    # ------------------------------------------------------------------
    # Filtered listing
    # ------------------------------------------------------------------
    def get_filtered_library_items(
        self,
        library_id: str,
        user: Optional[UserAccess] = None,
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
        sort_by, collapse_series = normalize_sort(filter_group, sort_by, collapse_series)
        book_filter = build_book_filter(
            filter_group,
            filter_value,
            has_user=user is not None,
            recent_days=self._settings.recent_days,
        )
        permission = user_permission_predicates(user)
        parameters = {**book_filter.parameters, **permission.parameters}

        terms = resolve_sort_terms(
            sort_by,
            sort_desc,
            collapse_series,
            ignore_prefix=self._settings.sorting_ignore_prefix,
        )
        if book_filter.series_id and sort_by != "sequence":
            terms.append(sequence_term())

        sorts_by_progress = any(term.key.startswith("progress.") for term in terms)
        progress_user_id = None
        if user is not None and (book_filter.join_progress or sorts_by_progress):
            progress_user_id = user.id

        collapse: Optional[CollapseResult] = None
        if collapse_series:
            collapse_predicates = self._collapse_predicates(book_filter, permission)
            joins_progress = user is not None and "progress" in referenced_prefixes(collapse_predicates)
            collapse = resolve_collapsed_series(
                self._session,
                library_id,
                collapse_predicates,
                parameters=parameters,
                progress_user_id=user.id if joins_progress else None,
            )

        predicates: List[Predicate] = [*book_filter.predicates, *permission.predicates]
        if collapse is not None and collapse.book_ids_to_exclude:
            predicates.append(NotInSet("media.id", tuple(sorted(collapse.book_ids_to_exclude))))

        stmt, scope = self._book_statement(
            library_id,
            predicates,
            parameters=parameters,
            progress_user_id=progress_user_id,
        )
        count = self._count(stmt)

        order = order_clauses(terms, scope, self._synthesized_columns(terms, book_filter, collapse))
        if order:
            order.append(BookModel.id)
        stmt = stmt.order_by(*order).options(*self._load_options())
        if limit:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        books = self._session.scalars(stmt).all()
        include_rss_feed = _wants_rss_feed(include, filter_group)
        items = [
            project_book_item(
                book,
                filter_group=filter_group,
                filter_value=filter_value,
                collapse=collapse,
                include_rss_feed=include_rss_feed,
            )
            for book in books
        ]
        logger.debug(
            "Loaded %d of %d library items",
            len(items),
            count,
            extra={
                "event": "library.items.filtered",
                "filter_group": filter_group,
                "sort_by": sort_by,
                "collapse_series": collapse_series,
            },
        )
        return LibraryItemsPage(items, count)

    @staticmethod
    def _collapse_predicates(
        book_filter: MediaFilter, permission: PermissionClause
    ) -> List[Predicate]:
        media: Sequence[Predicate] = book_filter.media_predicates
        if book_filter.group == "progress":
            series_level = (
                collapse_series_progress_predicate(book_filter.value)
                if book_filter.join_progress
                else None
            )
            media = (series_level,) if series_level is not None else ()
        return [*book_filter.item_predicates, *media, *permission.predicates]

    def _synthesized_columns(
        self,
        terms: Sequence[SortTerm],
        book_filter: MediaFilter,
        collapse: Optional[CollapseResult],
    ) -> Dict[str, Any]:
        keys = {term.key for term in terms}
        ignore_prefix = self._settings.sorting_ignore_prefix
        columns: Dict[str, Any] = {}
        if AUTHOR_NAME in keys:
            columns[AUTHOR_NAME] = author_name_column(BookModel.id)
        if AUTHOR_NAME_LF in keys:
            columns[AUTHOR_NAME_LF] = author_name_column(BookModel.id, last_first=True)
        if DISPLAY_TITLE in keys:
            title = BookModel.title_ignore_prefix if ignore_prefix else BookModel.title
            columns[DISPLAY_TITLE] = display_title_column(
                BookModel.id,
                title,
                collapse.series_to_include.keys() if collapse is not None else (),
                ignore_prefix=ignore_prefix,
            )
        if SEQUENCE in keys and book_filter.series_id:
            columns[SEQUENCE] = series_sequence_column(BookModel.id, book_filter.series_id)
        return columns

    # ------------------------------------------------------------------
    # Shelf sources
    # ------------------------------------------------------------------
    def get_continue_series_library_items(
        self,
        library_id: str,
        user: Optional[UserAccess],
        *,
        include: Iterable[str] = (),
        limit: int = 10,
        offset: int = 0,
    ) -> LibraryItemsPage:
        """Next unfinished book of each series the user is partway through.

        A series qualifies with at least one finished book, at least one
        unfinished book and no book currently in progress.  Series are ranked
        by the user's most recent progress update within them.
        """

        if user is None:
            return LibraryItemsPage([], 0)

        def series_progress(outer: bool = False) -> Tuple[Any, Any, Any]:
            joined = aliased(BookSeriesModel)
            progress = aliased(MediaProgressModel)
            on = and_(
                progress.media_item_id == joined.book_id,
                progress.media_item_type == "book",
                progress.user_id == user.id,
            )
            stmt = select(func.count(joined.id)).select_from(joined)
            stmt = stmt.outerjoin(progress, on) if outer else stmt.join(progress, on)
            return stmt.where(joined.series_id == SeriesModel.id), joined, progress

        finished_stmt, _, finished_progress = series_progress()
        finished = finished_stmt.where(finished_progress.is_finished.is_(True)).scalar_subquery()

        unfinished_stmt, _, unfinished_progress = series_progress(outer=True)
        unfinished = unfinished_stmt.where(
            or_(unfinished_progress.is_finished.is_(None), unfinished_progress.is_finished.is_(False))
        ).scalar_subquery()

        active_stmt, _, active_progress = series_progress()
        in_progress = active_stmt.where(
            active_progress.is_finished.is_(False), active_progress.current_time > 0
        ).scalar_subquery()

        recent_joined = aliased(BookSeriesModel)
        recent_progress = aliased(MediaProgressModel)
        last_update = (
            select(func.max(recent_progress.updated_at))
            .select_from(recent_joined)
            .join(
                recent_progress,
                and_(
                    recent_progress.media_item_id == recent_joined.book_id,
                    recent_progress.media_item_type == "book",
                    recent_progress.user_id == user.id,
                ),
            )
            .where(recent_joined.series_id == SeriesModel.id)
            .scalar_subquery()
        )

        qualifying = select(SeriesModel.id, SeriesModel.name).where(
            SeriesModel.library_id == library_id,
            finished >= 1,
            unfinished >= 1,
            in_progress == 0,
        )
        count = int(
            self._session.scalar(select(func.count()).select_from(qualifying.subquery())) or 0
        )
        rows = self._session.execute(
            qualifying.order_by(last_update.desc(), SeriesModel.id).limit(limit).offset(offset)
        ).all()

        permission = user_permission_predicates(user)
        include_rss_feed = _wants_rss_feed(include)
        items: List[Dict[str, Any]] = []
        for row in rows:
            next_book = self._next_unfinished_book(library_id, row.id, user, permission)
            if next_book is None:
                continue
            book, sequence = next_book
            payload = project_book_item(book, include_rss_feed=include_rss_feed)
            payload["series"] = {"id": row.id, "name": row.name, "sequence": sequence}
            items.append(payload)
        return LibraryItemsPage(items, count)

    def _next_unfinished_book(
        self,
        library_id: str,
        series_id: str,
        user: UserAccess,
        permission: PermissionClause,
    ) -> Optional[Tuple[BookModel, Optional[str]]]:
        stmt = select(BookModel, BookSeriesModel.sequence).join(
            BookSeriesModel, BookSeriesModel.book_id == BookModel.id
        )
        stmt, scope = join_book_items(
            stmt, library_id, progress_user_id=user.id, parameters=permission.parameters
        )
        stmt = (
            stmt.where(
                BookSeriesModel.series_id == series_id,
                *scope.compile([NullOr("progress.is_finished", False), *permission.predicates]),
            )
            .order_by(
                numeric_sequence(BookSeriesModel.sequence).asc().nulls_last(),
                BookSeriesModel.created_at,
            )
            .limit(1)
            .options(*self._load_options())
        )
        row = self._session.execute(stmt).first()
        if row is None:
            return None
        return row[0], row[1]

    def get_discover_library_items(
        self,
        library_id: str,
        user: Optional[UserAccess],
        *,
        include: Iterable[str] = (),
        limit: int = 10,
    ) -> LibraryItemsPage:
        """Random sample of books the user has not started.

        Standalone books qualify directly; for series the user has not
        started only the first book by sequence is eligible.
        """

        permission = user_permission_predicates(user)
        started_joined = aliased(BookSeriesModel)
        series_stmt = select(SeriesModel.id).where(SeriesModel.library_id == library_id)
        if user is not None:
            started_progress = aliased(MediaProgressModel)
            started = (
                select(func.count(started_progress.id))
                .select_from(started_joined)
                .join(
                    started_progress,
                    and_(
                        started_progress.media_item_id == started_joined.book_id,
                        started_progress.media_item_type == "book",
                        started_progress.user_id == user.id,
                    ),
                )
                .where(
                    started_joined.series_id == SeriesModel.id,
                    or_(started_progress.is_finished.is_(True), started_progress.current_time > 0),
                )
                .scalar_subquery()
            )
            series_stmt = series_stmt.where(started == 0)
        series_ids = self._session.scalars(series_stmt.order_by(func.random()).limit(limit)).all()

        first_books: List[str] = []
        for series_id in series_ids:
            book_id = self._first_book_id(library_id, series_id, permission)
            if book_id is not None:
                first_books.append(book_id)

        predicates: List[Predicate] = [
            any_of(HasRelation("series", negate=True), InSet("media.id", tuple(first_books))),
            *permission.predicates,
        ]
        if user is not None:
            predicates.insert(0, _NOT_STARTED)
        stmt, _ = self._book_statement(
            library_id,
            predicates,
            parameters=permission.parameters,
            progress_user_id=user.id if user is not None else None,
        )
        count = self._count(stmt)
        books = self._session.scalars(
            stmt.order_by(func.random()).limit(limit).options(*self._load_options())
        ).all()
        include_rss_feed = _wants_rss_feed(include)
        items = [project_book_item(book, include_rss_feed=include_rss_feed) for book in books]
        return LibraryItemsPage(items, count)

    def _first_book_id(
        self, library_id: str, series_id: str, permission: PermissionClause
    ) -> Optional[str]:
        stmt = select(BookModel.id).join(BookSeriesModel, BookSeriesModel.book_id == BookModel.id)
        stmt, scope = join_book_items(stmt, library_id, parameters=permission.parameters)
        stmt = (
            stmt.where(BookSeriesModel.series_id == series_id, *scope.compile(permission.predicates))
            .order_by(
                numeric_sequence(BookSeriesModel.sequence).asc().nulls_last(),
                BookSeriesModel.created_at,
            )
            .limit(1)
        )
        return self._session.scalar(stmt)

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

    def get_series_most_recently_added(
        self,
        library_id: str,
        user: Optional[UserAccess],
        *,
        include: Iterable[str] = (),
        limit: int = 5,
    ) -> EntityPage:
        """Series ordered by the newest library item among their visible books."""

        permission = user_permission_predicates(user)
        latest = func.max(LibraryItemModel.created_at)
        stmt = (
            select(SeriesModel.id, latest.label("latest_added"))
            .select_from(SeriesModel)
            .join(BookSeriesModel, BookSeriesModel.series_id == SeriesModel.id)
            .join(BookModel, BookModel.id == BookSeriesModel.book_id)
        )
        stmt, scope = join_book_items(stmt, library_id, parameters=permission.parameters)
        stmt = stmt.where(*scope.compile(permission.predicates)).group_by(SeriesModel.id)

        count = int(self._session.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
        rows = self._session.execute(
            stmt.order_by(latest.desc(), SeriesModel.id).limit(limit)
        ).all()

        include_rss_feed = _wants_rss_feed(include)
        entities: List[Dict[str, Any]] = []
        for row in rows:
            series = self._session.get(SeriesModel, row.id)
            if series is None:
                continue
            books = self._series_books(library_id, series.id, permission)
            entities.append(
                {
                    "id": series.id,
                    "name": series.name,
                    "nameIgnorePrefix": series.name_ignore_prefix,
                    "description": series.description,
                    "addedAt": to_millis(series.created_at),
                    "updatedAt": to_millis(series.updated_at),
                    "books": [
                        project_book_item(
                            book,
                            filter_group="series",
                            filter_value=series.id,
                            include_rss_feed=include_rss_feed,
                        )
                        for book in books
                    ],
                }
            )
        return EntityPage(entities, count)

    def _series_books(
        self, library_id: str, series_id: str, permission: PermissionClause
    ) -> List[BookModel]:
        stmt = select(BookModel).join(BookSeriesModel, BookSeriesModel.book_id == BookModel.id)
        stmt, scope = join_book_items(stmt, library_id, parameters=permission.parameters)
        stmt = (
            stmt.where(BookSeriesModel.series_id == series_id, *scope.compile(permission.predicates))
            .order_by(
                numeric_sequence(BookSeriesModel.sequence).asc().nulls_last(),
                BookSeriesModel.created_at,
            )
            .options(*self._load_options())
        )
        return list(self._session.scalars(stmt).all())

    def _progress_entries(
        self,
        library_id: str,
        user: Optional[UserAccess],
        state: Predicate,
        include: Iterable[str],
    ) -> List[ProgressEntry]:
        if user is None:
            return []
        permission = user_permission_predicates(user)
        stmt, scope = self._book_statement(
            library_id,
            [state, *permission.predicates],
            parameters=permission.parameters,
            progress_user_id=user.id,
        )
        stmt = (
            stmt.add_columns(scope.progress.updated_at)
            .order_by(scope.progress.updated_at.desc(), BookModel.id)
            .options(*self._load_options())
        )
        include_rss_feed = _wants_rss_feed(include)
        entries: List[ProgressEntry] = []
        for book, updated_at in self._session.execute(stmt).all():
            payload = project_book_item(book, include_rss_feed=include_rss_feed)
            payload["progressLastUpdate"] = to_millis(updated_at)
            entries.append(ProgressEntry(payload, ebook_only=book.is_ebook_only))
        return entries

    def get_media_items_in_progress(
        self, library_id: str, user: Optional[UserAccess], *, include: Iterable[str] = ()
    ) -> List[ProgressEntry]:
        """Books the user has started and not finished, most recently updated first."""

        return self._progress_entries(library_id, user, _IN_PROGRESS, include)

    def get_media_finished(
        self, library_id: str, user: Optional[UserAccess], *, include: Iterable[str] = ()
    ) -> List[ProgressEntry]:
        return self._progress_entries(library_id, user, _FINISHED, include)

    def get_newest_authors(
        self, library_id: str, user: Optional[UserAccess], *, limit: int = 10
    ) -> EntityPage:
        """Authors with at least one visible book, newest first."""

        permission = user_permission_predicates(user)
        num_books = func.count(distinct(BookModel.id))
        stmt = (
            select(AuthorModel, num_books.label("num_books"))
            .select_from(AuthorModel)
            .join(BookAuthorModel, BookAuthorModel.author_id == AuthorModel.id)
            .join(BookModel, BookModel.id == BookAuthorModel.book_id)
        )
        stmt, scope = join_book_items(stmt, library_id, parameters=permission.parameters)
        stmt = stmt.where(
            AuthorModel.library_id == library_id, *scope.compile(permission.predicates)
        ).group_by(AuthorModel.id)

        count = int(self._session.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
        rows = self._session.execute(
            stmt.order_by(AuthorModel.created_at.desc(), AuthorModel.id).limit(limit)
        ).all()
        entities = [
            {
                "id": author.id,
                "name": author.name,
                "lastFirst": author.last_first,
                "description": author.description,
                "imagePath": author.image_path,
                "addedAt": to_millis(author.created_at),
                "updatedAt": to_millis(author.updated_at),
                "numBooks": int(books),
            }
            for author, books in rows
        ]
        return EntityPage(entities, count)

    # ------------------------------------------------------------------
    # Entity listings
    # ------------------------------------------------------------------
    def get_library_items_for_series(
        self,
        series: SeriesModel,
        user: Optional[UserAccess] = None,
        *,
        include: Iterable[str] = (),
    ) -> LibraryItemsPage:
        return self.get_filtered_library_items(
            series.library_id,
            user,
            filter_group="series",
            filter_value=series.id,
            sort_by="sequence",
            include=include,
        )

    def get_library_items_for_author(
        self,
        author: AuthorModel,
        user: Optional[UserAccess] = None,
        *,
        include: Iterable[str] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> LibraryItemsPage:
        return self.get_filtered_library_items(
            author.library_id,
            user,
            filter_group="authors",
            filter_value=author.id,
            sort_by="media.metadata.publishedYear",
            include=include,
            limit=limit,
            offset=offset,
        )

    def get_library_items_for_collection(
        self,
        library_item_ids: Sequence[str],
        user: Optional[UserAccess] = None,
        *,
        include: Iterable[str] = (),
    ) -> List[Dict[str, Any]]:
        """Visible books among ``library_item_ids``, kept in the given order."""

        if not library_item_ids:
            return []
        permission = user_permission_predicates(user)
        stmt = select(BookModel).join(
            LibraryItemModel,
            and_(
                LibraryItemModel.media_id == BookModel.id,
                LibraryItemModel.media_type == "book",
            ),
        )
        scope = QueryScope(media=BookModel, parameters=permission.parameters)
        stmt = stmt.where(
            LibraryItemModel.id.in_(list(library_item_ids)),
            *scope.compile(permission.predicates),
        ).options(*self._load_options())
        books = self._session.scalars(stmt).all()
        position = {item_id: index for index, item_id in enumerate(library_item_ids)}
        books = sorted(
            books,
            key=lambda book: position.get(book.library_item.id if book.library_item else "", 0),
        )
        include_rss_feed = _wants_rss_feed(include)
        return [project_book_item(book, include_rss_feed=include_rss_feed) for book in books]


__all__ = ["BookQueryRepository"]
