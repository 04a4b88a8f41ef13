from __future__ import annotations

import pytest

from audioshelf.config_manager import ServerSettings
from audioshelf.library import LibraryQueryService

pytestmark = pytest.mark.library

EPUB = {"metadata": {"filename": "book.epub", "ext": ".epub"}}
TWO_TRACKS = [{"index": 1, "duration": 300.0}, {"index": 2, "duration": 300.0}]


def titles(service: LibraryQueryService, library_id: str, group: str, value=None, user=None) -> list[str]:
    page = service.get_filtered_library_items(
        library_id,
        user,
        filter_group=group,
        filter_value=value,
        sort_by="media.metadata.title",
    )
    assert page.count == len(page.items)
    return [item["media"]["metadata"]["title"] for item in page.items]


def test_tracks_filter(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    factory.book(library, "Silent", audio_files=[], ebook_file=EPUB)
    factory.book(library, "Single")
    factory.book(library, "Double", audio_files=TWO_TRACKS)
    factory.commit()

    assert titles(service, library.id, "tracks", "none") == ["Silent"]
    assert titles(service, library.id, "tracks", "single") == ["Single"]
    assert titles(service, library.id, "tracks", "multi") == ["Double"]


def test_ebooks_filter(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    factory.book(library, "Readable", ebook_file=EPUB)
    factory.book(
        library,
        "Extras",
        library_files=[
            {"ino": "1", "isSupplementary": True, "metadata": {"ext": ".pdf"}},
            {"ino": "2", "isSupplementary": False, "metadata": {"ext": ".mp3"}},
        ],
    )
    factory.book(library, "Plain", library_files=[{"ino": "3", "isSupplementary": False}])
    factory.commit()

    assert titles(service, library.id, "ebooks", "ebook") == ["Readable"]
    assert titles(service, library.id, "ebooks", "supplementary") == ["Extras"]


def test_abridged_publisher_and_language_filters(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    factory.book(library, "Short", abridged=True, publisher="Tor", language="English")
    factory.book(library, "Long", publisher="Tor", language="French")
    factory.book(library, "Other", publisher="Orbit")
    factory.commit()

    assert titles(service, library.id, "abridged") == ["Short"]
    assert titles(service, library.id, "publishers", "Tor") == ["Long", "Short"]
    assert titles(service, library.id, "languages", "French") == ["Long"]
    assert titles(service, library.id, "languages", "German") == []


def test_no_series_filter(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    series = factory.series(library, "Cycle")
    factory.book(library, "In Series", series=[(series, "1")])
    factory.book(library, "Standalone")
    factory.commit()

    assert titles(service, library.id, "series", "no-series") == ["Standalone"]


def test_missing_scalar_filters(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    factory.book(library, "Complete", asin="B000123", isbn="9780000000001", cover_path="/covers/a.jpg", publisher="Tor")
    factory.book(library, "Blank Fields", asin="", isbn="", cover_path="", publisher="")
    factory.book(library, "Null Fields")
    factory.commit()

    for value in ("asin", "isbn", "cover", "publisher"):
        assert titles(service, library.id, "missing", value) == ["Blank Fields", "Null Fields"], value


def test_missing_array_filters(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    factory.book(library, "Narrated", narrators=["Kate Reading"], genres=["Fantasy"])
    factory.book(library, "Bare")
    factory.commit()

    assert titles(service, library.id, "missing", "narrators") == ["Bare"]
    assert titles(service, library.id, "missing", "genres") == ["Bare"]


def test_ebook_progress_filters(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    reading = factory.book(library, "Reading", audio_files=[], ebook_file=EPUB)
    read = factory.book(library, "Read", audio_files=[], ebook_file=EPUB)
    listened = factory.book(library, "Listened")
    listening = factory.book(library, "Listening With Ebook", ebook_file=EPUB)
    user = factory.user()
    factory.progress(user, reading, ebook_progress=0.4)
    factory.progress(user, read, ebook_progress=1.0, is_finished=True)
    factory.progress(user, listened, current_time=600.0, is_finished=True)
    factory.progress(user, listening, current_time=30.0, ebook_progress=0.2)
    factory.commit()

    assert titles(service, library.id, "progress", "ebook-in-progress", user) == ["Reading"]
    assert titles(service, library.id, "progress", "ebook-finished", user) == ["Read"]
    assert titles(service, library.id, "progress", "audio-in-progress", user) == ["Listening With Ebook"]
    assert titles(service, library.id, "progress", "in-progress", user) == ["Listening With Ebook", "Reading"]
    assert titles(service, library.id, "progress", "not-started", user) == ["Reading"]


def test_collapse_with_progress_filter_uses_series_level_rows(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    series = factory.series(library, "Trilogy")
    first = factory.book(library, "Book One", series=[(series, "1")])
    second = factory.book(library, "Book Two", series=[(series, "2")])
    third = factory.book(library, "Book Three", series=[(series, "3")])
    factory.book(library, "Fresh Standalone")
    user = factory.user()
    factory.progress(user, first, is_finished=True)
    factory.progress(user, second, is_finished=True)
    factory.commit()

    def collapsed(value: str):
        return service.get_filtered_library_items(
            library.id,
            user,
            filter_group="progress",
            filter_value=value,
            sort_by="media.metadata.title",
            collapse_series=True,
        )

    finished = collapsed("finished")
    not_started = collapsed("not-started")

    assert finished.count == 1
    assert finished.items[0]["media"]["id"] == first.id
    assert finished.items[0]["collapsedSeries"]["numBooks"] == 3

    assert not_started.count == 2
    by_id = {item["media"]["id"]: item for item in not_started.items}
    assert third.id in by_id
    assert by_id[third.id]["collapsedSeries"]["sequence"] == "3"
    assert first.id not in by_id and second.id not in by_id


def test_collapsed_title_sort_ignores_prefixes_when_enabled(factory, database) -> None:
    service = LibraryQueryService(settings=ServerSettings(sorting_ignore_prefix=True))
    library = factory.library()
    series = factory.series(library, "The Zodiac", name_ignore_prefix="Zodiac, The")
    factory.book(library, "Aardvark Tales", series=[(series, "1")])
    factory.book(library, "The Beginning", title_ignore_prefix="Beginning, The")
    factory.book(library, "Middle")
    factory.commit()

    collapsed = service.get_filtered_library_items(
        library.id, sort_by="media.metadata.title", collapse_series=True
    )
    flat = service.get_filtered_library_items(library.id, sort_by="media.metadata.title")

    assert [item["media"]["metadata"]["title"] for item in collapsed.items] == [
        "The Beginning",
        "Middle",
        "Aardvark Tales",
    ]
    assert [item["media"]["metadata"]["title"] for item in flat.items] == [
        "Aardvark Tales",
        "The Beginning",
        "Middle",
    ]


def test_sort_by_author_last_first_keeps_attachment_order(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    zadie = factory.author(library, "Zadie Smith", last_first="Smith, Zadie")
    alice = factory.author(library, "Alice Munro", last_first="Munro, Alice")
    factory.book(library, "White Teeth", authors=[zadie])
    factory.book(library, "Runaway", authors=[alice])
    factory.book(library, "Joint", authors=[zadie, alice])
    factory.book(library, "Pair", authors=[alice, zadie])
    factory.commit()

    ascending = service.get_filtered_library_items(library.id, sort_by="media.metadata.authorNameLF")
    descending = service.get_filtered_library_items(
        library.id, sort_by="media.metadata.authorNameLF", sort_desc=True
    )

    names = [item["media"]["metadata"]["title"] for item in ascending.items]
    assert names == ["Runaway", "Pair", "White Teeth", "Joint"]
    assert [item["media"]["metadata"]["title"] for item in descending.items] == list(reversed(names))
