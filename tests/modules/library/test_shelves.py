from __future__ import annotations

import pytest

from audioshelf.library import LibraryNotFoundError, LibraryQueryService
from audioshelf.permissions import UserAccess

pytestmark = pytest.mark.library


def shelf_map(shelves) -> dict:
    return {shelf.id: shelf for shelf in shelves}


def titles(entities) -> list[str]:
    return [entity["media"]["metadata"]["title"] for entity in entities]


def seed_three_series(factory):
    library = factory.library()
    series_a = factory.series(library, "Alpha")
    series_b = factory.series(library, "Beta")
    series_c = factory.series(library, "Gamma")
    books = {
        "A1": factory.book(library, "A1", series=[(series_a, "1")]),
        "A2": factory.book(library, "A2", series=[(series_a, "2")]),
        "A3": factory.book(library, "A3", series=[(series_a, "3")]),
        "B1": factory.book(library, "B1", series=[(series_b, "1")]),
        "B2": factory.book(library, "B2", series=[(series_b, "2")]),
        "C1": factory.book(library, "C1", series=[(series_c, "1")]),
        "C2": factory.book(library, "C2", series=[(series_c, "2")]),
    }
    return library, (series_a, series_b, series_c), books


def test_continue_series_picks_next_unfinished_book(factory, service: LibraryQueryService) -> None:
    library, (series_a, _, series_c), books = seed_three_series(factory)
    user = factory.user()
    factory.progress(user, books["A1"], is_finished=True)
    factory.progress(user, books["C1"], is_finished=True)
    factory.commit()

    shelves = shelf_map(service.get_personalized_shelves(library.id, user))

    continue_series = shelves["continue-series"]
    assert continue_series.type == "book"
    assert continue_series.total == 2
    assert titles(continue_series.entities) == ["C2", "A2"]
    assert continue_series.entities[0]["series"] == {
        "id": series_c.id,
        "name": "Gamma",
        "sequence": "2",
    }
    assert continue_series.entities[1]["series"]["id"] == series_a.id


def test_series_with_book_in_progress_is_not_continued(factory, service: LibraryQueryService) -> None:
    library, _, books = seed_three_series(factory)
    user = factory.user()
    factory.progress(user, books["A1"], is_finished=True)
    factory.progress(user, books["A2"], current_time=300.0)
    factory.commit()

    shelves = shelf_map(service.get_personalized_shelves(library.id, user))

    assert "continue-series" not in shelves
    assert titles(shelves["continue-listening"].entities) == ["A2"]


def test_shelf_order_and_empty_shelves_are_dropped(factory, service: LibraryQueryService) -> None:
    library, _, books = seed_three_series(factory)
    user = factory.user()
    factory.progress(user, books["A1"], is_finished=True)
    factory.progress(user, books["C1"], is_finished=True)
    factory.commit()

    shelves = service.get_personalized_shelves(library.id, user)

    assert [shelf.id for shelf in shelves] == [
        "continue-series",
        "recently-added",
        "recent-series",
        "discover",
        "listen-again",
    ]
    discover = shelf_map(shelves)["discover"]
    assert titles(discover.entities) == ["B1"]
    assert discover.total == 1
    assert shelves[-1].to_dict()["labelStringKey"] == "LabelListenAgain"
    assert sorted(titles(shelves[-1].entities)) == ["A1", "C1"]


def test_in_progress_split_between_listening_and_reading(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    audiobook = factory.book(library, "Audio")
    ebook = factory.book(library, "Paper", audio_files=[], ebook_file={"metadata": {"ext": ".epub"}})
    hidden = factory.book(library, "Hidden")
    user = factory.user()
    factory.progress(user, audiobook, current_time=42.0)
    factory.progress(user, ebook, ebook_progress=0.4)
    factory.progress(user, hidden, current_time=10.0, hide_from_continue_listening=True)
    factory.commit()

    shelves = shelf_map(service.get_personalized_shelves(library.id, user))

    listening = shelves["continue-listening"]
    reading = shelves["continue-reading"]
    assert titles(listening.entities) == ["Audio"]
    assert listening.entities[0]["progressLastUpdate"] is not None
    assert titles(reading.entities) == ["Paper"]
    assert reading.label == "Continue Reading"


def test_recent_series_and_newest_authors(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    author = factory.author(library, "Naomi Novik")
    idle = factory.author(library, "No Books Yet")
    series = factory.series(library, "Temeraire")
    factory.book(library, "Throne of Jade", authors=[author], series=[(series, "2")])
    factory.book(library, "His Majesty's Dragon", authors=[author], series=[(series, "1")])
    factory.commit()

    shelves = shelf_map(service.get_personalized_shelves(library.id))

    recent_series = shelves["recent-series"]
    assert recent_series.type == "series"
    (entity,) = recent_series.entities
    assert entity["name"] == "Temeraire"
    assert titles(entity["books"]) == ["His Majesty's Dragon", "Throne of Jade"]
    authors = shelves["newest-authors"]
    assert [entry["id"] for entry in authors.entities] == [author.id]
    assert authors.entities[0]["numBooks"] == 2
    assert idle.id not in {entry["id"] for entry in authors.entities}


def test_shelves_respect_permissions(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    factory.book(library, "Clean")
    factory.book(library, "Explicit", explicit=True)
    factory.commit()
    viewer = UserAccess(id="viewer", can_access_explicit_content=False)

    shelves = shelf_map(service.get_personalized_shelves(library.id, viewer))

    assert titles(shelves["recently-added"].entities) == ["Clean"]
    assert titles(shelves["discover"].entities) == ["Clean"]


def test_shelf_limit_caps_entities_but_not_totals(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    for index in range(4):
        factory.book(library, f"Book {index}")
    factory.commit()

    shelves = shelf_map(service.get_personalized_shelves(library.id, limit=2))

    recent = shelves["recently-added"]
    assert titles(recent.entities) == ["Book 3", "Book 2"]
    assert recent.total == 4


def test_podcast_shelves(factory, service: LibraryQueryService) -> None:
    library = factory.library("Podcasts", media_type="podcast")
    show = factory.podcast(library, "Weekly Show")
    older = factory.episode(show, "Episode 1")
    newer = factory.episode(show, "Episode 2")
    user = factory.user()
    factory.progress(user, older, current_time=60.0, media_item_type="podcastEpisode")
    factory.commit()

    shelves = service.get_personalized_shelves(library.id, user)
    by_id = shelf_map(shelves)

    assert [shelf.id for shelf in shelves] == ["continue-listening", "newest-episodes", "recently-added"]
    assert by_id["continue-listening"].type == "episode"
    assert by_id["continue-listening"].entities[0]["recentEpisode"]["id"] == older.id
    assert [entity["recentEpisode"]["id"] for entity in by_id["newest-episodes"].entities] == [
        newer.id,
        older.id,
    ]
    assert by_id["recently-added"].type == "podcast"


def test_empty_library_has_no_shelves(factory, service: LibraryQueryService) -> None:
    library = factory.library()
    factory.commit()

    assert service.get_personalized_shelves(library.id) == []


def test_unknown_library_shelves_raise(service: LibraryQueryService) -> None:
    with pytest.raises(LibraryNotFoundError):
        service.get_personalized_shelves("missing")
