"""Map listing sort options onto SQLAlchemy ORDER BY terms."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import Float, case, cast, func, null, or_, select
from sqlalchemy.orm import aliased

from .. import logging_manager
from ..database.models import AuthorModel, BookAuthorModel, BookSeriesModel, SeriesModel
from ..database.predicates import PredicateError, QueryScope

logger = logging_manager.get_logger().getChild("library.sorting")

AUTHOR_NAME = "author_name"
AUTHOR_NAME_LF = "author_name_lf"
DISPLAY_TITLE = "display_title"
SEQUENCE = "sequence"

_NUMERIC_PREFIXES = ("[0-9]*", ".[0-9]*", "-[0-9]*", "-.[0-9]*")

_ITEM_SORTS = {
    "addedAt": "item.created_at",
    "size": "item.size",
    "birthtimeMs": "item.birthtime",
    "mtimeMs": "item.mtime",
}
_MEDIA_SORTS = {
    "media.duration": "media.duration",
    "media.metadata.publishedYear": "media.published_year",
}


@dataclass(frozen=True)
class SortTerm:
    """One ORDER BY term; ``key`` is a symbolic field or a synthesized column name."""

    key: str
    descending: bool = False
    nulls: Optional[str] = None
    nocase: bool = False


def normalize_sort(
    filter_group: Optional[str], sort_by: Optional[str], collapse_series: bool
) -> Tuple[Optional[str], bool]:
    """Substitute sorts that make no sense for the active filter group."""

    if sort_by == "sequence" and filter_group != "series":
        sort_by = "media.metadata.title"
    if sort_by == "progress" and filter_group != "progress":
        sort_by = "media.metadata.title"
    if filter_group == "series":
        collapse_series = False
    return sort_by, collapse_series


def resolve_sort_terms(
    sort_by: Optional[str],
    sort_desc: bool = False,
    collapse_series: bool = False,
    *,
    ignore_prefix: bool = False,
) -> List[SortTerm]:
    if not sort_by:
        return []
    if sort_by in _ITEM_SORTS:
        return [SortTerm(_ITEM_SORTS[sort_by], sort_desc)]
    if sort_by in _MEDIA_SORTS:
        return [SortTerm(_MEDIA_SORTS[sort_by], sort_desc)]
    if sort_by == "media.metadata.authorName":
        return [SortTerm(AUTHOR_NAME, sort_desc, nocase=True)]
    if sort_by == "media.metadata.authorNameLF":
        return [SortTerm(AUTHOR_NAME_LF, sort_desc, nocase=True)]
    if sort_by == "media.metadata.title":
        if collapse_series:
            return [SortTerm(DISPLAY_TITLE, sort_desc, nocase=True)]
        key = "media.title_ignore_prefix" if ignore_prefix else "media.title"
        return [SortTerm(key, sort_desc, nocase=True)]
    if sort_by == "sequence":
        return [sequence_term(sort_desc)]
    if sort_by == "progress":
        return [SortTerm("progress.updated_at", sort_desc)]
    logger.debug(
        "Ignoring unsupported sort key",
        extra={"event": "library.sort.ignored", "sort_by": sort_by},
    )
    return []


def sequence_term(descending: bool = False) -> SortTerm:
    return SortTerm(SEQUENCE, descending, nulls="first" if descending else "last")


def numeric_sequence(column: Any) -> Any:
    """Cast a free-form sequence to a float.

    Only values that start like a number are cast; anything else (null,
    blank, "Part 3") becomes NULL and sorts after every numbered book when ascending.
    """

    trimmed = func.trim(column)
    glob = trimmed.op("GLOB", is_comparison=True)
    return case(
        (or_(*(glob(pattern) for pattern in _NUMERIC_PREFIXES)), cast(trimmed, Float)),
        else_=null(),
    )


def author_name_column(media_id: Any, *, last_first: bool = False) -> Any:
    """Comma-joined author names of a book, in the order they were attached.

    Names are concatenated from a subquery already ordered by book and
    attachment time, so each book's group is read in that order.
    """

    name = AuthorModel.last_first if last_first else AuthorModel.name
    ordered = (
        select(BookAuthorModel.book_id, name.label("name"))
        .join(AuthorModel, AuthorModel.id == BookAuthorModel.author_id)
        .order_by(BookAuthorModel.book_id, BookAuthorModel.created_at, BookAuthorModel.id)
        .subquery()
    )
    names = (
        select(ordered.c.book_id, func.group_concat(ordered.c.name, ", ").label("names"))
        .group_by(ordered.c.book_id)
        .subquery()
    )
    return select(names.c.names).where(names.c.book_id == media_id).scalar_subquery()


def series_sequence_column(media_id: Any, series_id: str) -> Any:
    """Numeric sequence of a book within one series."""

    return (
        select(numeric_sequence(BookSeriesModel.sequence))
        .where(BookSeriesModel.book_id == media_id, BookSeriesModel.series_id == series_id)
        .order_by(BookSeriesModel.created_at)
        .limit(1)
        .scalar_subquery()
    )


def display_title_column(
    media_id: Any,
    title: Any,
    collapsed_book_series_ids: Iterable[str],
    *,
    ignore_prefix: bool = False,
) -> Any:
    """Series name for collapse representatives, the book title otherwise."""

    ids = list(collapsed_book_series_ids)
    if not ids:
        return title
    joined = aliased(BookSeriesModel)
    series_name = SeriesModel.name_ignore_prefix if ignore_prefix else SeriesModel.name
    name = (
        select(series_name)
        .join(joined, joined.series_id == SeriesModel.id)
        .where(joined.book_id == media_id, joined.id.in_(ids))
        .limit(1)
        .scalar_subquery()
    )
    return func.coalesce(name, title)


def order_clauses(
    terms: Sequence[SortTerm],
    scope: QueryScope,
    synthesized: Optional[Mapping[str, Any]] = None,
) -> List[Any]:
    """Compile sort terms; terms whose source is unavailable are dropped."""

    columns = synthesized or {}
    clauses: List[Any] = []
    for term in terms:
        if term.key in columns:
            expression = columns[term.key]
        else:
            try:
                expression = scope.column(term.key)
            except PredicateError:
                logger.debug(
                    "Dropping sort term without a source column",
                    extra={"event": "library.sort.dropped", "sort_key": term.key},
                )
                continue
        if term.nocase:
            expression = func.lower(expression)
        ordered = expression.desc() if term.descending else expression.asc()
        if term.nulls == "first":
            ordered = ordered.nulls_first()
        elif term.nulls == "last":
            ordered = ordered.nulls_last()
        clauses.append(ordered)
    return clauses


__all__ = [
    "AUTHOR_NAME",
    "AUTHOR_NAME_LF",
    "DISPLAY_TITLE",
    "SEQUENCE",
    "SortTerm",
    "author_name_column",
    "display_title_column",
    "normalize_sort",
    "numeric_sequence",
    "order_clauses",
    "resolve_sort_terms",
    "sequence_term",
    "series_sequence_column",
]
