"""
Heimursaga API — Expedition & Waypoint Models
===============================================

An expedition groups entries along a geographic path. Money columns
(`goal`, `raised`) are stored in cents. `location_type` + `location_ref`
point at the expedition's current location: a waypoint id or an entry
public id.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saga.database import Base, SoftDeleteMixin, TimestampMixin, utcnow
from saga.models.enums import ExpeditionStatus, Visibility
from saga.models.user import User


class Expedition(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "expeditions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    author_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ExpeditionStatus.PLANNED.value
    )
    visibility: Mapped[str] = mapped_column(
        String(32), nullable=False, default=Visibility.PUBLIC.value
    )
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cover_image: Mapped[str | None] = mapped_column(String(512), nullable=True)

    goal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    raised: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    location_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    location_ref: Mapped[str | None] = mapped_column(String(32), nullable=True)

    entries_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    author: Mapped[User] = relationship(User, lazy="selectin")

    def __repr__(self) -> str:
        return f"<Expedition(public_id='{self.public_id}', status='{self.status}')>"


class Waypoint(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "waypoints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    expedition_id: Mapped[int] = mapped_column(
        ForeignKey("expeditions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lon: Mapped[float] = mapped_column(Float, nullable=False)
    date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ExpeditionBookmark(Base):
    __tablename__ = "expedition_bookmarks"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    expedition_id: Mapped[int] = mapped_column(
        ForeignKey("expeditions.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class ExpeditionNote(TimestampMixin, SoftDeleteMixin, Base):
    """Owner's short field note; readable by the owner and their sponsors."""

    __tablename__ = "expedition_notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    expedition_id: Mapped[int] = mapped_column(
        ForeignKey("expeditions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)


class ExpeditionNoteReply(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "expedition_note_replies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    note_id: Mapped[int] = mapped_column(
        ForeignKey("expedition_notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)

    author: Mapped[User] = relationship(User, lazy="selectin")
