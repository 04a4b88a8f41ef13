"""User and media-progress models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import Base, TimestampMixin, new_id


class UserModel(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    permissions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    item_tags_selected: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    libraries_accessible: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    media_progresses: Mapped[list[MediaProgressModel]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class MediaProgressModel(Base, TimestampMixin):
    __tablename__ = "media_progresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    media_item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    media_item_type: Mapped[str] = mapped_column(String(20), nullable=False, default="book")
    duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    current_time: Mapped[float] = mapped_column(
        "current_time_seconds", Float, nullable=False, default=0.0
    )
    ebook_location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ebook_progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_finished: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hide_from_continue_listening: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    finished_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    user: Mapped[UserModel] = relationship(back_populates="media_progresses")

    __table_args__ = (
        Index("idx_media_progresses_user_item", "user_id", "media_item_id"),
        Index("idx_media_progresses_updated", "updated_at"),
    )
