"""Pick one representative book per series for collapsed listings."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session, aliased

from .. import logging_manager
from ..database.models import BookModel, BookSeriesModel, SeriesModel
from ..database.predicates import Predicate
from .book_query import join_book_items
from .sorting import numeric_sequence

logger = logging_manager.get_logger().getChild("library.collapse")


@dataclass(frozen=True)
class CollapsedSeries:
    book_series_id: str
    series_id: str
    name: str
    name_ignore_prefix: Optional[str]
    sequence: Optional[str]
    num_books: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.series_id,
            "name": self.name,
            "nameIgnorePrefix": self.name_ignore_prefix,
            "sequence": self.sequence,
            "numBooks": self.num_books,
        }


@dataclass(frozen=True)
class CollapseResult:
    book_ids_to_exclude: FrozenSet[str] = frozenset()
    series_to_include: Mapping[str, CollapsedSeries] = field(default_factory=dict)

    def for_book(self, book_series_ids: Iterable[str]) -> Optional[CollapsedSeries]:
        for book_series_id in book_series_ids:
            collapsed = self.series_to_include.get(book_series_id)
            if collapsed is not None:
                return collapsed
        return None


@dataclass(frozen=True)
class SeriesBookRow:
    """One (series, book) pair in series id then sequence order."""

    series_id: str
    name: str
    name_ignore_prefix: Optional[str]
    num_books: int
    book_series_id: str
    book_id: str
    sequence: Optional[str]


def select_representatives(rows: Iterable[SeriesBookRow]) -> CollapseResult:
    """Walk ordered rows and choose the first not-yet-chosen book of each series.

    A book picked as representative of a later series is removed from the
    exclusion set again; books never picked stay excluded.
    """

    chosen: set[str] = set()
    excluded: set[str] = set()
    included: Dict[str, CollapsedSeries] = {}

    for _, group in itertools.groupby(rows, key=lambda row: row.series_id):
        found = False
        for row in group:
            if not found and row.book_id not in chosen:
                chosen.add(row.book_id)
                excluded.discard(row.book_id)
                included[row.book_series_id] = CollapsedSeries(
                    book_series_id=row.book_series_id,
                    series_id=row.series_id,
                    name=row.name,
                    name_ignore_prefix=row.name_ignore_prefix,
                    sequence=row.sequence,
                    num_books=row.num_books,
                )
                found = True
            elif row.book_id not in chosen:
                excluded.add(row.book_id)

    return CollapseResult(frozenset(excluded), included)


def resolve_collapsed_series(
    session: Session,
    library_id: str,
    predicates: Sequence[Predicate],
    *,
    parameters: Optional[Mapping[str, Any]] = None,
    progress_user_id: Optional[str] = None,
) -> CollapseResult:
    """Run the series/book pass that feeds :func:`select_representatives`."""

    counted = aliased(BookSeriesModel)
    num_books = (
        select(func.count(counted.id))
        .where(counted.series_id == SeriesModel.id)
        .scalar_subquery()
    )
    stmt = (
        select(
            SeriesModel.id,
            SeriesModel.name,
            SeriesModel.name_ignore_prefix,
            num_books.label("num_books"),
            BookSeriesModel.id.label("book_series_id"),
            BookModel.id.label("book_id"),
            BookSeriesModel.sequence,
        )
        .select_from(SeriesModel)
        .join(BookSeriesModel, BookSeriesModel.series_id == SeriesModel.id)
        .join(BookModel, BookModel.id == BookSeriesModel.book_id)
    )
    stmt, scope = join_book_items(
        stmt, library_id, progress_user_id=progress_user_id, parameters=parameters
    )
    stmt = stmt.where(*scope.compile(predicates)).order_by(
        SeriesModel.id,
        numeric_sequence(BookSeriesModel.sequence).asc().nulls_last(),
        BookSeriesModel.created_at,
        BookModel.id,
    )

    rows = [
        SeriesBookRow(
            series_id=row.id,
            name=row.name,
            name_ignore_prefix=row.name_ignore_prefix,
            num_books=row.num_books,
            book_series_id=row.book_series_id,
            book_id=row.book_id,
            sequence=row.sequence,
        )
        for row in session.execute(stmt)
    ]
    result = select_representatives(rows)
    logger.debug(
        "Collapsed %d series, excluding %d books",
        len(result.series_to_include),
        len(result.book_ids_to_exclude),
        extra={"event": "library.collapse.resolved", "library_id": library_id},
    )
    return result


__all__ = [
    "CollapseResult",
    "CollapsedSeries",
    "SeriesBookRow",
    "resolve_collapsed_series",
    "select_representatives",
]
