"""Library query package exports."""

from .library_models import (
    EntityPage,
    LibraryItemsPage,
    LibraryItemsQuery,
    ProgressEntry,
    Shelf,
    decode_filter,
    encode_filter,
)
from .library_service import (
    LibraryError,
    LibraryNotFoundError,
    LibraryQueryService,
    get_library_query_service,
)

__all__ = [
    "EntityPage",
    "LibraryError",
    "LibraryItemsPage",
    "LibraryItemsQuery",
    "LibraryNotFoundError",
    "LibraryQueryService",
    "ProgressEntry",
    "Shelf",
    "decode_filter",
    "encode_filter",
    "get_library_query_service",
]
