"""
Heimursaga API — Payout Models
================================

A payout method is a Stripe Connect express account owned by an Explorer
Pro member; payouts move available balance from it to their bank.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from saga.database import Base, SoftDeleteMixin, TimestampMixin
from saga.models.enums import PayoutMethodPlatform, PayoutStatus


class PayoutMethod(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "payout_methods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PayoutMethodPlatform.STRIPE.value
    )
    stripe_account_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )
    business_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    country: Mapped[str | None] = mapped_column(String(2), nullable=True)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="usd")
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Payout(TimestampMixin, Base):
    __tablename__ = "payouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payout_method_id: Mapped[int] = mapped_column(
        ForeignKey("payout_methods.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PayoutStatus.PENDING.value
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="usd")
    stripe_payout_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )
    arrival_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
