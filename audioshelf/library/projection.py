"""Shape ORM rows into the camelCase payloads returned to clients."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, Mapping, Optional

from ..database.models import (
    BookModel,
    FeedModel,
    LibraryItemModel,
    PodcastEpisodeModel,
    PodcastModel,
)
from .series_collapse import CollapseResult


def to_millis(value: Optional[datetime]) -> Optional[int]:
    """Epoch milliseconds for a naive-UTC or aware datetime."""

    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def _ebook_format(ebook_file: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not ebook_file:
        return None
    metadata = ebook_file.get("metadata")
    if isinstance(metadata, Mapping):
        ext = metadata.get("ext") or metadata.get("format")
    else:
        ext = ebook_file.get("ext") or ebook_file.get("format")
    if not ext:
        path = ebook_file.get("path") or ""
        ext = PurePosixPath(str(path)).suffix
    return str(ext).lstrip(".").lower() or None


def project_feed(feed: Optional[FeedModel]) -> Optional[Dict[str, Any]]:
    if feed is None:
        return None
    return {
        "id": feed.id,
        "slug": feed.slug,
        "entityType": feed.entity_type,
        "entityId": feed.entity_id,
        "feedUrl": feed.feed_url,
    }


def project_item_envelope(item: LibraryItemModel) -> Dict[str, Any]:
    return {
        "id": item.id,
        "ino": item.ino,
        "libraryId": item.library_id,
        "mediaType": item.media_type,
        "path": item.path,
        "relPath": item.rel_path,
        "isFile": bool(item.is_file),
        "isMissing": bool(item.is_missing),
        "isInvalid": bool(item.is_invalid),
        "mtimeMs": to_millis(item.mtime),
        "ctimeMs": to_millis(item.ctime),
        "birthtimeMs": to_millis(item.birthtime),
        "addedAt": to_millis(item.created_at),
        "updatedAt": to_millis(item.updated_at),
        "size": item.size,
        "numFiles": len(item.library_files or []),
    }


def project_book_metadata(book: BookModel) -> Dict[str, Any]:
    authors = [{"id": link.author.id, "name": link.author.name} for link in book.book_authors]
    return {
        "title": book.title,
        "titleIgnorePrefix": book.title_ignore_prefix,
        "subtitle": book.subtitle,
        "authors": authors,
        "authorName": ", ".join(author["name"] for author in authors),
        "narrators": list(book.narrators or []),
        "series": [
            {"id": link.series.id, "name": link.series.name, "sequence": link.sequence}
            for link in book.book_series
        ],
        "genres": list(book.genres or []),
        "publishedYear": book.published_year,
        "publishedDate": book.published_date,
        "publisher": book.publisher,
        "description": book.description,
        "isbn": book.isbn,
        "asin": book.asin,
        "language": book.language,
        "explicit": bool(book.explicit),
        "abridged": bool(book.abridged),
    }


def project_book_media(book: BookModel, library_item_id: Optional[str]) -> Dict[str, Any]:
    audio_files = book.audio_files or []
    return {
        "id": book.id,
        "libraryItemId": library_item_id,
        "metadata": project_book_metadata(book),
        "coverPath": book.cover_path,
        "tags": list(book.tags or []),
        "numTracks": len(audio_files),
        "numAudioFiles": len(audio_files),
        "numChapters": len(book.chapters or []),
        "duration": book.duration or 0,
        "ebookFormat": _ebook_format(book.ebook_file),
    }


def project_book_item(
    book: BookModel,
    *,
    filter_group: Optional[str] = None,
    filter_value: Optional[str] = None,
    collapse: Optional[CollapseResult] = None,
    include_rss_feed: bool = False,
) -> Dict[str, Any]:
    """Minified library-item payload for a book row.

    Adds ``series`` when listing one series, ``collapsedSeries`` when the
    book represents a collapsed series and ``rssFeed`` when requested.
    """

    item = book.library_item
    payload = project_item_envelope(item) if item is not None else {"id": None}
    payload["media"] = project_book_media(book, payload["id"])

    if filter_group == "series" and filter_value and filter_value != "no-series":
        for link in book.book_series:
            if link.series_id == filter_value:
                payload["series"] = {
                    "id": link.series.id,
                    "name": link.series.name,
                    "sequence": link.sequence,
                }
                break

    if collapse is not None:
        collapsed = collapse.for_book(link.id for link in book.book_series)
        if collapsed is not None:
            payload["collapsedSeries"] = collapsed.to_dict()

    if include_rss_feed and item is not None:
        payload["rssFeed"] = project_feed(item.feeds[0] if item.feeds else None)

    return payload


def project_episode(episode: PodcastEpisodeModel) -> Dict[str, Any]:
    audio_file = episode.audio_file or {}
    return {
        "id": episode.id,
        "podcastId": episode.podcast_id,
        "index": episode.index,
        "season": episode.season,
        "episode": episode.episode,
        "episodeType": episode.episode_type,
        "title": episode.title,
        "subtitle": episode.subtitle,
        "description": episode.description,
        "publishedAt": to_millis(episode.published_at),
        "addedAt": to_millis(episode.created_at),
        "duration": audio_file.get("duration") or 0,
        "size": audio_file.get("size") or 0,
    }


def project_podcast_media(podcast: PodcastModel, library_item_id: Optional[str]) -> Dict[str, Any]:
    return {
        "id": podcast.id,
        "libraryItemId": library_item_id,
        "metadata": {
            "title": podcast.title,
            "titleIgnorePrefix": podcast.title_ignore_prefix,
            "author": podcast.author,
            "description": podcast.description,
            "releaseDate": podcast.release_date,
            "genres": list(podcast.genres or []),
            "feedUrl": podcast.feed_url,
            "language": podcast.language,
            "explicit": bool(podcast.explicit),
            "type": podcast.podcast_type,
        },
        "coverPath": podcast.cover_path,
        "tags": list(podcast.tags or []),
        "numEpisodes": len(podcast.episodes),
    }


def project_podcast_item(
    podcast: PodcastModel,
    *,
    include_rss_feed: bool = False,
    recent_episode: Optional[PodcastEpisodeModel] = None,
) -> Dict[str, Any]:
    item = podcast.library_item
    payload = project_item_envelope(item) if item is not None else {"id": None}
    payload["media"] = project_podcast_media(podcast, payload["id"])
    if recent_episode is not None:
        payload["recentEpisode"] = project_episode(recent_episode)
    if include_rss_feed and item is not None:
        payload["rssFeed"] = project_feed(item.feeds[0] if item.feeds else None)
    return payload


__all__ = [
    "project_book_item",
    "project_book_media",
    "project_book_metadata",
    "project_episode",
    "project_feed",
    "project_item_envelope",
    "project_podcast_item",
    "project_podcast_media",
    "to_millis",
]
