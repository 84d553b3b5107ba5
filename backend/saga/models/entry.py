"""
Heimursaga API — Journal Entry & Comment Models
=================================================

Tables:
    entries          geo-tagged journal entries (soft-deletable)
    entry_likes      user → entry likes
    entry_bookmarks  user → entry bookmarks
    comments         one level of threading: top-level comments and replies

`entries.public_id` is the identifier exposed by the API; integer ids
never leave the service layer.
"""

from datetime import datetime
from typing import List

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saga.database import Base, SoftDeleteMixin, TimestampMixin, utcnow
from saga.models.enums import EntryType, Visibility
from saga.models.user import User


class Entry(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    author_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    expedition_id: Mapped[int | None] = mapped_column(
        ForeignKey("expeditions.id", ondelete="SET NULL"), nullable=True, index=True
    )

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    place: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    country_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cover_image: Mapped[str | None] = mapped_column(String(512), nullable=True)

    entry_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=EntryType.STANDARD.value
    )
    visibility: Mapped[str] = mapped_column(
        String(32), nullable=False, default=Visibility.PUBLIC.value
    )
    is_draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    comments_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bookmarks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    views_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    author: Mapped[User] = relationship(User, lazy="selectin")

    __table_args__ = (
        Index("idx_entries_public_feed", "visibility", "is_draft", "id"),
        Index("idx_entries_coords", "lat", "lon"),
    )

    @property
    def is_public(self) -> bool:
        return self.visibility == Visibility.PUBLIC.value

    def __repr__(self) -> str:
        return f"<Entry(public_id='{self.public_id}', author_id={self.author_id}, draft={self.is_draft})>"


class EntryLike(Base):
    __tablename__ = "entry_likes"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    entry_id: Mapped[int] = mapped_column(
        ForeignKey("entries.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class EntryBookmark(Base):
    __tablename__ = "entry_bookmarks"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    entry_id: Mapped[int] = mapped_column(
        ForeignKey("entries.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Comment(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    entry_id: Mapped[int] = mapped_column(
        ForeignKey("entries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)

    author: Mapped[User] = relationship(User, lazy="selectin")
    # Includes soft-deleted replies; callers filter on `deleted_at`
    replies: Mapped[List["Comment"]] = relationship(
        "Comment",
        lazy="selectin",
        order_by="Comment.created_at",
        viewonly=True,
    )
