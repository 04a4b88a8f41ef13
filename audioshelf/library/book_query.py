"""Shared statement scaffolding for book queries."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple

from sqlalchemy import Select, and_
from sqlalchemy.orm import aliased

from ..database.models import BookModel, LibraryItemModel, MediaProgressModel
from ..database.predicates import QueryScope


def join_book_items(
    stmt: Select,
    library_id: str,
    *,
    progress_user_id: Optional[str] = None,
    parameters: Optional[Mapping[str, Any]] = None,
) -> Tuple[Select, QueryScope]:
    """Join a book-selecting statement to its library items and, optionally, user progress.

    Progress rows are outer-joined so books without progress read as NULL.
    """

    stmt = stmt.join(
        LibraryItemModel,
        and_(
            LibraryItemModel.media_id == BookModel.id,
            LibraryItemModel.media_type == "book",
        ),
    ).where(LibraryItemModel.library_id == library_id)

    progress = None
    if progress_user_id:
        progress = aliased(MediaProgressModel, name="progress")
        stmt = stmt.outerjoin(
            progress,
            and_(
                progress.media_item_id == BookModel.id,
                progress.media_item_type == "book",
                progress.user_id == progress_user_id,
            ),
        )

    scope = QueryScope(
        media=BookModel,
        item=LibraryItemModel,
        progress=progress,
        parameters=dict(parameters or {}),
    )
    return stmt, scope


__all__ = ["join_book_items"]
