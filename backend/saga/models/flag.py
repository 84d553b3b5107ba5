"""
Heimursaga API — Content Flag Model
=====================================

A flag targets exactly one of an entry or a comment.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saga.database import Base, TimestampMixin
from saga.models.entry import Comment, Entry
from saga.models.enums import FlagStatus
from saga.models.user import User


class Flag(TimestampMixin, Base):
    __tablename__ = "flags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    reporter_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FlagStatus.PENDING.value, index=True
    )
    flagged_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("entries.id", ondelete="CASCADE"), nullable=True
    )
    flagged_comment_id: Mapped[int | None] = mapped_column(
        ForeignKey("comments.id", ondelete="CASCADE"), nullable=True
    )
    reviewed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_taken: Mapped[str | None] = mapped_column(String(32), nullable=True)

    reporter: Mapped[User] = relationship(User, foreign_keys=[reporter_id], lazy="selectin")
    reviewed_by: Mapped[User | None] = relationship(
        User, foreign_keys=[reviewed_by_id], lazy="selectin"
    )
    flagged_entry: Mapped[Entry | None] = relationship(Entry, lazy="selectin")
    flagged_comment: Mapped[Comment | None] = relationship(Comment, lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "(flagged_entry_id IS NULL) <> (flagged_comment_id IS NULL)",
            name="ck_flags_single_target",
        ),
    )
