from __future__ import annotations

import pytest
from sqlalchemy import select

from audioshelf.database.models import BookModel
from audioshelf.database.predicates import (
    HasRelation,
    JsonArrayAnyFlag,
    JsonArrayEmpty,
    JsonArrayMatchCount,
    Not,
    NullOrEmpty,
    Param,
    PredicateError,
    QueryScope,
    all_of,
    any_of,
)
from audioshelf.library.book_query import join_book_items

pytestmark = pytest.mark.library


def matching_titles(factory, library, *predicates, parameters=None) -> set[str]:
    stmt, scope = join_book_items(select(BookModel), library.id, parameters=parameters)
    stmt = stmt.where(*scope.compile(predicates))
    return {book.title for book in factory.session.scalars(stmt)}


def test_json_array_match_count_accepts_lists(factory) -> None:
    library = factory.library()
    factory.book(library, "Both", tags=["a", "b"])
    factory.book(library, "OnlyA", tags=["a"])
    factory.book(library, "None", tags=[])

    wanted = Param("wanted")
    at_least_one = JsonArrayMatchCount("media.tags", wanted, ">=", 1)
    exactly_two = JsonArrayMatchCount("media.tags", wanted, "==", 2)

    assert matching_titles(factory, library, at_least_one, parameters={"wanted": ["a", "b"]}) == {
        "Both",
        "OnlyA",
    }
    assert matching_titles(factory, library, exactly_two, parameters={"wanted": ["a", "b"]}) == {"Both"}


def test_null_or_empty_and_empty_arrays(factory) -> None:
    library = factory.library()
    factory.book(library, "Covered", cover_path="/covers/1.jpg", narrators=["Reader"])
    factory.book(library, "Blank", cover_path="", narrators=[])
    factory.book(library, "Unset")

    assert matching_titles(factory, library, NullOrEmpty("media.cover_path")) == {"Blank", "Unset"}
    assert matching_titles(factory, library, JsonArrayEmpty("media.narrators")) == {"Blank", "Unset"}


def test_supplementary_flag_on_library_files(factory) -> None:
    library = factory.library()
    factory.book(library, "Extras", library_files=[{"ino": "1", "isSupplementary": True}])
    factory.book(library, "Plain", library_files=[{"ino": "2", "isSupplementary": False}])

    assert matching_titles(
        factory, library, JsonArrayAnyFlag("item.library_files", "isSupplementary")
    ) == {"Extras"}


def test_relation_predicates(factory) -> None:
    library = factory.library()
    author = factory.author(library, "Writer")
    other = factory.author(library, "Other")
    factory.book(library, "Written", authors=[author])
    factory.book(library, "Co-written", authors=[author, other])
    factory.book(library, "Orphan")

    by_author = HasRelation("authors", Param("author"))

    assert matching_titles(factory, library, by_author, parameters={"author": other.id}) == {"Co-written"}
    assert matching_titles(factory, library, HasRelation("authors", negate=True)) == {"Orphan"}
    assert matching_titles(
        factory, library, any_of(Not(HasRelation("authors")), by_author), parameters={"author": other.id}
    ) == {"Orphan", "Co-written"}


def test_combinators_with_single_item_return_the_item() -> None:
    predicate = NullOrEmpty("media.title")

    assert all_of(predicate) is predicate
    assert any_of(predicate) is predicate


def test_scope_rejects_unavailable_fields_and_parameters() -> None:
    scope = QueryScope(media=BookModel)

    with pytest.raises(PredicateError):
        scope.column("progress.is_finished")
    with pytest.raises(PredicateError):
        scope.column("media.no_such_column")
    with pytest.raises(PredicateError):
        scope.value(Param("missing"))
