"""
Heimursaga API — Notification & Message Models
================================================

Notifications are written by the NOTIFICATION_CREATE event listener, never
directly by request handlers. Messages are direct messages between
Explorer Pro members.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saga.database import Base, utcnow
from saga.models.entry import Entry
from saga.models.user import User


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # NotificationContext value
    context: Mapped[str] = mapped_column(String(32), nullable=False)
    mention_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    mention_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("entries.id", ondelete="SET NULL"), nullable=True
    )
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    sponsorship_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    sponsorship_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sponsorship_currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    mention_user: Mapped[User | None] = relationship(
        User, foreign_keys=[mention_user_id], lazy="selectin"
    )
    mention_entry: Mapped[Entry | None] = relationship(Entry, lazy="selectin")

    __table_args__ = (Index("idx_notifications_user_read", "user_id", "is_read"),)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    sender_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    sender: Mapped[User] = relationship(User, foreign_keys=[sender_id], lazy="selectin")
    recipient: Mapped[User] = relationship(User, foreign_keys=[recipient_id], lazy="selectin")
