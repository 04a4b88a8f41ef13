"""SQLAlchemy models; import all to register with Base.metadata."""

from .library import (
    AuthorModel,
    BookAuthorModel,
    BookModel,
    BookSeriesModel,
    FeedModel,
    LibraryItemModel,
    LibraryModel,
    PodcastEpisodeModel,
    PodcastModel,
    SeriesModel,
)
from .user import MediaProgressModel, UserModel

__all__ = [
    "AuthorModel",
    "BookAuthorModel",
    "BookModel",
    "BookSeriesModel",
    "FeedModel",
    "LibraryItemModel",
    "LibraryModel",
    "MediaProgressModel",
    "PodcastEpisodeModel",
    "PodcastModel",
    "SeriesModel",
    "UserModel",
]
