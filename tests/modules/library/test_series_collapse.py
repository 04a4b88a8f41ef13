from __future__ import annotations

import pytest

from audioshelf.library.series_collapse import SeriesBookRow, select_representatives

pytestmark = pytest.mark.library


def row(series_id: str, book_id: str, sequence: str | None = None, num_books: int = 2) -> SeriesBookRow:
    return SeriesBookRow(
        series_id=series_id,
        name=f"Series {series_id}",
        name_ignore_prefix=None,
        num_books=num_books,
        book_series_id=f"{series_id}:{book_id}",
        book_id=book_id,
        sequence=sequence,
    )


def test_first_book_of_each_series_represents_it() -> None:
    result = select_representatives(
        [row("a", "a1", "1", 3), row("a", "a2", "2", 3), row("a", "a3", "3", 3), row("b", "b1", "1", 1)]
    )

    assert set(result.series_to_include) == {"a:a1", "b:b1"}
    assert result.book_ids_to_exclude == frozenset({"a2", "a3"})
    assert result.series_to_include["a:a1"].to_dict() == {
        "id": "a",
        "name": "Series a",
        "nameIgnorePrefix": None,
        "sequence": "1",
        "numBooks": 3,
    }


def test_book_shared_by_two_series_represents_only_the_first() -> None:
    result = select_representatives(
        [row("a", "shared", "1"), row("a", "x", "2"), row("b", "shared", "1"), row("b", "c", "2")]
    )

    assert set(result.series_to_include) == {"a:shared", "b:c"}
    assert result.book_ids_to_exclude == frozenset({"x"})


def test_book_chosen_later_is_no_longer_excluded() -> None:
    result = select_representatives(
        [row("a", "b", "1"), row("a", "c", "2"), row("b", "c", "1")]
    )

    assert set(result.series_to_include) == {"a:b", "b:c"}
    assert result.book_ids_to_exclude == frozenset()


def test_for_book_finds_matching_join_row() -> None:
    result = select_representatives([row("a", "a1", "1")])

    assert result.for_book(["other", "a:a1"]).series_id == "a"
    assert result.for_book(["other"]) is None


def test_no_rows_means_nothing_collapsed() -> None:
    result = select_representatives([])

    assert result.book_ids_to_exclude == frozenset()
    assert dict(result.series_to_include) == {}
