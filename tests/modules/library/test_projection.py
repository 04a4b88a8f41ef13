from __future__ import annotations

from datetime import datetime, timezone

import pytest

from audioshelf.library.projection import project_book_item, to_millis
from audioshelf.library.series_collapse import CollapsedSeries, CollapseResult

pytestmark = pytest.mark.library


def test_to_millis_treats_naive_values_as_utc() -> None:
    assert to_millis(datetime(2024, 1, 1)) == 1704067200000
    assert to_millis(datetime(2024, 1, 1, tzinfo=timezone.utc)) == 1704067200000
    assert to_millis(None) is None


def test_book_payload_shape(factory) -> None:
    library = factory.library()
    author = factory.author(library, "Ursula K. Le Guin", "Le Guin, Ursula K.")
    series = factory.series(library, "Earthsea")
    book = factory.book(
        library,
        "A Wizard of Earthsea",
        authors=[author],
        series=[(series, "1")],
        genres=["Fantasy"],
        tags=["classic"],
        narrators=["Rob Inglis"],
        ebook_file={"metadata": {"ext": ".epub"}},
        published_year="1968",
    )

    payload = project_book_item(book)

    assert payload["mediaType"] == "book"
    assert payload["libraryId"] == library.id
    assert payload["addedAt"] == to_millis(book.library_item.created_at)
    assert "libraryItem" not in payload["media"]
    media = payload["media"]
    assert media["libraryItemId"] == payload["id"]
    assert media["numTracks"] == 1
    assert media["ebookFormat"] == "epub"
    metadata = media["metadata"]
    assert metadata["authors"] == [{"id": author.id, "name": "Ursula K. Le Guin"}]
    assert metadata["authorName"] == "Ursula K. Le Guin"
    assert metadata["series"] == [{"id": series.id, "name": "Earthsea", "sequence": "1"}]
    assert metadata["genres"] == ["Fantasy"]
    assert metadata["narrators"] == ["Rob Inglis"]
    assert "series" not in payload
    assert "collapsedSeries" not in payload
    assert "rssFeed" not in payload


def test_series_and_collapse_annotations(factory) -> None:
    library = factory.library()
    series = factory.series(library, "Discworld")
    book = factory.book(library, "Guards! Guards!", series=[(series, "8")])
    link = book.book_series[0]
    collapse = CollapseResult(
        frozenset(),
        {
            link.id: CollapsedSeries(
                book_series_id=link.id,
                series_id=series.id,
                name="Discworld",
                name_ignore_prefix="Discworld",
                sequence="8",
                num_books=41,
            )
        },
    )

    in_series = project_book_item(book, filter_group="series", filter_value=series.id)
    collapsed = project_book_item(book, collapse=collapse)

    assert in_series["series"] == {"id": series.id, "name": "Discworld", "sequence": "8"}
    assert collapsed["collapsedSeries"]["numBooks"] == 41
    assert collapsed["collapsedSeries"]["id"] == series.id


def test_rss_feed_included_on_request(factory) -> None:
    library = factory.library()
    book = factory.book(library, "Feedable")
    factory.feed(book, slug="feedable")
    factory.session.expire(book.library_item)

    with_feed = project_book_item(book, include_rss_feed=True)
    without_feed = project_book_item(book, include_rss_feed=False)

    assert with_feed["rssFeed"]["slug"] == "feedable"
    assert "rssFeed" not in without_feed
