"""Composable predicate tree compiled into SQLAlchemy boolean expressions.

Filters are described as small immutable nodes that reference columns by
symbolic name (``media.tags``, ``item.created_at``, ``progress.is_finished``)
and bound values by parameter name.  A :class:`QueryScope` binds those names
to the entities and aliases of one concrete statement, so the same predicate
can be reused by the main listing query and by the series-collapse pass.

JSON array tests use SQLite's JSON1 functions (``json_each``, ``json_valid``,
``json_array_length``).
"""

from __future__ import annotations

import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import and_, exists, false, func, not_, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from .models import BookAuthorModel, BookSeriesModel, FeedModel, LibraryItemModel

_OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


class PredicateError(ValueError):
    """Raised when a predicate references a field or parameter the scope lacks."""


@dataclass(frozen=True)
class Param:
    """Reference to a named bound parameter supplied by the query scope."""

    name: str


@dataclass
class QueryScope:
    """Binds symbolic field prefixes to the entities of one statement."""

    media: Any
    item: Any = LibraryItemModel
    progress: Any = None
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def has(self, prefix: str) -> bool:
        return self._target(prefix) is not None

    def _target(self, prefix: str) -> Any:
        if prefix == "media":
            return self.media
        if prefix == "item":
            return self.item
        if prefix == "progress":
            return self.progress
        return None

    def column(self, ref: str) -> Any:
        prefix, _, attribute = ref.partition(".")
        target = self._target(prefix)
        if target is None or not attribute:
            raise PredicateError(f"Field {ref!r} is not available in this query scope")
        try:
            return getattr(target, attribute)
        except AttributeError as exc:
            raise PredicateError(f"Unknown field {ref!r}") from exc

    def value(self, value: Any) -> Any:
        if isinstance(value, Param):
            if value.name not in self.parameters:
                raise PredicateError(f"Missing bound parameter {value.name!r}")
            return self.parameters[value.name]
        return value

    def compile(self, predicates: Iterable["Predicate"]) -> List[ColumnElement[bool]]:
        return [predicate.compile(self) for predicate in predicates]


class Predicate:
    """Base class for predicate nodes."""

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:  # pragma: no cover - abstract
        raise NotImplementedError

    def fields(self) -> Tuple[str, ...]:
        """Symbolic fields referenced by this node (and its children)."""
        return ()


@dataclass(frozen=True)
class And(Predicate):
    items: Tuple[Predicate, ...]

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        if not self.items:
            return true()
        return and_(*scope.compile(self.items))

    def fields(self) -> Tuple[str, ...]:
        return tuple(name for item in self.items for name in item.fields())


@dataclass(frozen=True)
class Or(Predicate):
    items: Tuple[Predicate, ...]

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        if not self.items:
            return false()
        return or_(*scope.compile(self.items))

    def fields(self) -> Tuple[str, ...]:
        return tuple(name for item in self.items for name in item.fields())


@dataclass(frozen=True)
class Not(Predicate):
    item: Predicate

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        return not_(self.item.compile(scope))

    def fields(self) -> Tuple[str, ...]:
        return self.item.fields()


@dataclass(frozen=True)
class Compare(Predicate):
    field: str
    op: str
    value: Any

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        try:
            comparator = _OPERATORS[self.op]
        except KeyError as exc:
            raise PredicateError(f"Unsupported operator {self.op!r}") from exc
        return comparator(scope.column(self.field), scope.value(self.value))

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class IsNull(Predicate):
    field: str

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        return scope.column(self.field).is_(None)

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class NotNull(Predicate):
    field: str

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        return scope.column(self.field).is_not(None)

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class NullOr(Predicate):
    """``field IS NULL OR field = value``; a missing outer-joined row reads as NULL."""

    field: str
    value: Any

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        column = scope.column(self.field)
        return or_(column.is_(None), column == scope.value(self.value))

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class NullOrEmpty(Predicate):
    field: str

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        column = scope.column(self.field)
        return or_(column.is_(None), column == "")

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class JsonArrayLength(Predicate):
    field: str
    op: str
    length: int

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        comparator = _OPERATORS[self.op]
        return comparator(func.json_array_length(scope.column(self.field)), self.length)

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class JsonArrayEmpty(Predicate):
    field: str

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        column = scope.column(self.field)
        return or_(column.is_(None), func.json_array_length(column) == 0)

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class JsonArrayMatchCount(Predicate):
    """Compare the number of array elements found in a parameter value.

    The parameter may hold a single value or a sequence of values.
    """

    field: str
    param: Param
    op: str = ">="
    count: int = 1

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        column = scope.column(self.field)
        wanted = scope.value(self.param)
        elements = func.json_each(column).table_valued("value")
        if isinstance(wanted, (list, tuple, set, frozenset)):
            match = elements.c.value.in_(list(wanted))
        else:
            match = elements.c.value == wanted
        matches = (
            select(func.count())
            .select_from(elements)
            .where(func.json_valid(column), match)
            .scalar_subquery()
        )
        return _OPERATORS[self.op](matches, self.count)

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class JsonArrayAnyFlag(Predicate):
    """True when any object in a JSON array has ``key`` set to true."""

    field: str
    key: str

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        column = scope.column(self.field)
        elements = func.json_each(column).table_valued("value")
        return exists(
            select(elements.c.value)
            .select_from(elements)
            .where(func.json_extract(elements.c.value, f"$.{self.key}") == 1)
        )

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


def _book_id(scope: QueryScope) -> Any:
    return scope.column("media.id")


def _author_rows(scope: QueryScope, related_id: Optional[str]) -> Any:
    stmt = select(BookAuthorModel.id).where(BookAuthorModel.book_id == _book_id(scope))
    if related_id is not None:
        stmt = stmt.where(BookAuthorModel.author_id == related_id)
    return stmt


def _series_rows(scope: QueryScope, related_id: Optional[str]) -> Any:
    stmt = select(BookSeriesModel.id).where(BookSeriesModel.book_id == _book_id(scope))
    if related_id is not None:
        stmt = stmt.where(BookSeriesModel.series_id == related_id)
    return stmt


def _feed_rows(scope: QueryScope, related_id: Optional[str]) -> Any:
    stmt = select(FeedModel.id).where(
        FeedModel.entity_type == "libraryItem",
        FeedModel.entity_id == scope.column("item.id"),
    )
    if related_id is not None:
        stmt = stmt.where(FeedModel.id == related_id)
    return stmt


_RELATIONS: Dict[str, Callable[[QueryScope, Optional[str]], Any]] = {
    "authors": _author_rows,
    "series": _series_rows,
    "feeds": _feed_rows,
}


@dataclass(frozen=True)
class HasRelation(Predicate):
    """EXISTS test over a join table, optionally pinned to one related id."""

    relation: str
    related: Any = None
    negate: bool = False

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        try:
            rows = _RELATIONS[self.relation]
        except KeyError as exc:
            raise PredicateError(f"Unknown relation {self.relation!r}") from exc
        related_id = scope.value(self.related) if self.related is not None else None
        clause = exists(rows(scope, related_id))
        return not_(clause) if self.negate else clause

    def fields(self) -> Tuple[str, ...]:
        return ("item.id",) if self.relation == "feeds" else ("media.id",)


@dataclass(frozen=True)
class InSet(Predicate):
    field: str
    values: Tuple[Any, ...]

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        if not self.values:
            return false()
        return scope.column(self.field).in_(list(self.values))

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class NotInSet(Predicate):
    field: str
    values: Tuple[Any, ...]

    def compile(self, scope: QueryScope) -> ColumnElement[bool]:
        return scope.column(self.field).not_in(list(self.values))

    def fields(self) -> Tuple[str, ...]:
        return (self.field,)


def all_of(*items: Predicate) -> Predicate:
    return items[0] if len(items) == 1 else And(tuple(items))


def any_of(*items: Predicate) -> Predicate:
    return items[0] if len(items) == 1 else Or(tuple(items))


def referenced_prefixes(predicates: Sequence[Predicate]) -> frozenset[str]:
    return frozenset(
        name.partition(".")[0] for predicate in predicates for name in predicate.fields()
    )


__all__ = [
    "And",
    "Compare",
    "HasRelation",
    "InSet",
    "IsNull",
    "JsonArrayAnyFlag",
    "JsonArrayEmpty",
    "JsonArrayLength",
    "JsonArrayMatchCount",
    "Not",
    "NotInSet",
    "NotNull",
    "NullOr",
    "NullOrEmpty",
    "Or",
    "Param",
    "Predicate",
    "PredicateError",
    "QueryScope",
    "all_of",
    "any_of",
    "referenced_prefixes",
]
