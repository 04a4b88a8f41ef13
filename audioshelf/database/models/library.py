"""Library models: libraries, items, media, authors, series and feeds."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import Base, TimestampMixin, new_id, utcnow


class LibraryModel(Base, TimestampMixin):
    __tablename__ = "libraries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_type: Mapped[str] = mapped_column(String(20), nullable=False, default="book")
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    items: Mapped[list[LibraryItemModel]] = relationship(back_populates="library")

    @property
    def is_book(self) -> bool:
        return self.media_type == "book"

    @property
    def is_podcast(self) -> bool:
        return self.media_type == "podcast"


class LibraryItemModel(Base, TimestampMixin):
    __tablename__ = "library_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    library_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("libraries.id", ondelete="CASCADE"), nullable=False
    )
    media_id: Mapped[str] = mapped_column(String(36), nullable=False)
    media_type: Mapped[str] = mapped_column(String(20), nullable=False, default="book")
    ino: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    path: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rel_path: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_file: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_missing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_invalid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mtime: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    ctime: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    birthtime: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    library_files: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    library: Mapped[LibraryModel] = relationship(back_populates="items")
    book: Mapped[Optional[BookModel]] = relationship(
        primaryjoin="and_(foreign(LibraryItemModel.media_id) == BookModel.id, "
        "LibraryItemModel.media_type == 'book')",
        viewonly=True,
        uselist=False,
    )
    podcast: Mapped[Optional[PodcastModel]] = relationship(
        primaryjoin="and_(foreign(LibraryItemModel.media_id) == PodcastModel.id, "
        "LibraryItemModel.media_type == 'podcast')",
        viewonly=True,
        uselist=False,
    )
    feeds: Mapped[list[FeedModel]] = relationship(
        primaryjoin="and_(LibraryItemModel.id == foreign(FeedModel.entity_id), "
        "FeedModel.entity_type == 'libraryItem')",
        viewonly=True,
        order_by="FeedModel.created_at",
    )

    __table_args__ = (
        Index("idx_library_items_created", "created_at"),
        Index("idx_library_items_media", "media_id"),
        Index("idx_library_items_library_media_type", "library_id", "media_type"),
        Index("idx_library_items_birthtime", "birthtime"),
        Index("idx_library_items_mtime", "mtime"),
    )


class BookModel(Base, TimestampMixin):
    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    title_ignore_prefix: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subtitle: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_year: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    published_date: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    publisher: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    isbn: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    asin: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    language: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    explicit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    abridged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cover_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    narrators: Mapped[Optional[list[str]]] = mapped_column(JSON(none_as_null=True), nullable=True, default=list)
    audio_files: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    ebook_file: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON(none_as_null=True), nullable=True)
    chapters: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[Optional[list[str]]] = mapped_column(JSON(none_as_null=True), nullable=True, default=list)
    genres: Mapped[Optional[list[str]]] = mapped_column(JSON(none_as_null=True), nullable=True, default=list)

    library_item: Mapped[Optional[LibraryItemModel]] = relationship(
        primaryjoin="and_(BookModel.id == foreign(LibraryItemModel.media_id), "
        "LibraryItemModel.media_type == 'book')",
        viewonly=True,
        uselist=False,
    )
    book_authors: Mapped[list[BookAuthorModel]] = relationship(
        back_populates="book",
        cascade="all, delete-orphan",
        order_by=lambda: (BookAuthorModel.created_at, BookAuthorModel.id),
    )
    book_series: Mapped[list[BookSeriesModel]] = relationship(
        back_populates="book",
        cascade="all, delete-orphan",
        order_by=lambda: (BookSeriesModel.created_at, BookSeriesModel.id),
    )

    __table_args__ = (
        Index("idx_books_title", "title"),
        Index("idx_books_title_ignore_prefix", "title_ignore_prefix"),
        Index("idx_books_published_year", "published_year"),
        Index("idx_books_duration", "duration"),
    )

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_files)

    @property
    def is_ebook_only(self) -> bool:
        return not self.audio_files and self.ebook_file is not None


class AuthorModel(Base, TimestampMixin):
    __tablename__ = "authors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    library_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("libraries.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    last_first: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    book_authors: Mapped[list[BookAuthorModel]] = relationship(back_populates="author")


class SeriesModel(Base, TimestampMixin):
    __tablename__ = "series"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    library_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("libraries.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    name_ignore_prefix: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    book_series: Mapped[list[BookSeriesModel]] = relationship(back_populates="series")


class BookAuthorModel(Base):
    __tablename__ = "book_authors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("authors.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now())

    book: Mapped[BookModel] = relationship(back_populates="book_authors")
    author: Mapped[AuthorModel] = relationship(back_populates="book_authors")

    __table_args__ = (
        Index("idx_book_authors_book", "book_id", "created_at"),
        Index("idx_book_authors_author", "author_id"),
    )


class BookSeriesModel(Base):
    __tablename__ = "book_series"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False
    )
    series_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("series.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now())

    book: Mapped[BookModel] = relationship(back_populates="book_series")
    series: Mapped[SeriesModel] = relationship(back_populates="book_series")

    __table_args__ = (
        Index("idx_book_series_book", "book_id", "created_at"),
        Index("idx_book_series_series", "series_id"),
    )


class PodcastModel(Base, TimestampMixin):
    __tablename__ = "podcasts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    title_ignore_prefix: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    release_date: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    feed_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    language: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    podcast_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    explicit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cover_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[Optional[list[str]]] = mapped_column(JSON(none_as_null=True), nullable=True, default=list)
    genres: Mapped[Optional[list[str]]] = mapped_column(JSON(none_as_null=True), nullable=True, default=list)

    library_item: Mapped[Optional[LibraryItemModel]] = relationship(
        primaryjoin="and_(PodcastModel.id == foreign(LibraryItemModel.media_id), "
        "LibraryItemModel.media_type == 'podcast')",
        viewonly=True,
        uselist=False,
    )
    episodes: Mapped[list[PodcastEpisodeModel]] = relationship(
        back_populates="podcast",
        cascade="all, delete-orphan",
        order_by=lambda: PodcastEpisodeModel.published_at.desc(),
    )


class PodcastEpisodeModel(Base, TimestampMixin):
    __tablename__ = "podcast_episodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    podcast_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("podcasts.id", ondelete="CASCADE"), nullable=False
    )
    index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    season: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    episode: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    episode_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subtitle: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    audio_file: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON(none_as_null=True), nullable=True)
    chapters: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    podcast: Mapped[PodcastModel] = relationship(back_populates="episodes")

    __table_args__ = (
        Index("idx_podcast_episodes_podcast", "podcast_id"),
        Index("idx_podcast_episodes_published", "published_at"),
    )


class FeedModel(Base, TimestampMixin):
    __tablename__ = "feeds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    feed_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    server_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cover_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("idx_feeds_entity", "entity_type", "entity_id"),)
