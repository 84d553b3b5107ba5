"""
Heimursaga API — Sponsorship, Checkout & Billing Models
=========================================================

Tables:
    sponsorship_tiers   per-creator price slots (ONE_TIME / MONTHLY)
    sponsorships        a sponsor → creator payment (one-time or recurring)
    checkouts           pending payment records tied to a Stripe PaymentIntent
    payment_methods     saved Stripe payment methods of a user
    subscriptions       Explorer Pro plan subscriptions

All amounts are integers in the smallest currency unit (cents).
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saga.database import Base, SoftDeleteMixin, TimestampMixin
from saga.models.enums import (
    CheckoutStatus,
    PaymentTransactionType,
    SponsorshipStatus,
    SubscriptionStatus,
)
from saga.models.user import User


class SponsorshipTier(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "sponsorship_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # TierType value
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("user_id", "type", "slot", name="uq_sponsorship_tiers_slot"),
    )


class Sponsorship(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "sponsorships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    # SponsorshipType value
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SponsorshipStatus.PENDING.value
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="usd")
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_delivery_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # user_id is the sponsor, creator_id the sponsored explorer
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    creator_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tier_id: Mapped[int | None] = mapped_column(
        ForeignKey("sponsorship_tiers.id", ondelete="SET NULL"), nullable=True
    )
    checkout_id: Mapped[int | None] = mapped_column(
        ForeignKey("checkouts.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    stripe_subscription_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sponsor: Mapped[User] = relationship(User, foreign_keys=[user_id], lazy="selectin")
    creator: Mapped[User] = relationship(User, foreign_keys=[creator_id], lazy="selectin")

    __table_args__ = (Index("idx_sponsorships_creator_status", "creator_id", "status"),)


class Checkout(TimestampMixin, Base):
    __tablename__ = "checkouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CheckoutStatus.PENDING.value
    )
    transaction: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentTransactionType.SPONSORSHIP.value
    )
    total: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="usd")

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    creator_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    tier_id: Mapped[int | None] = mapped_column(
        ForeignKey("sponsorship_tiers.id", ondelete="SET NULL"), nullable=True
    )
    # SponsorshipType for sponsorship checkouts, PlanPeriod for upgrades
    kind: Mapped[str | None] = mapped_column(String(32), nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_delivery: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    stripe_payment_intent_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)


class PaymentMethod(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "payment_methods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stripe_payment_method_id: Mapped[str] = mapped_column(String(255), nullable=False)
    label: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last4: Mapped[str | None] = mapped_column(String(4), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Subscription(TimestampMixin, Base):
    """Explorer Pro subscription of a user (one row per user)."""

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    # PlanPeriod value
    period: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value
    )
    stripe_subscription_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
