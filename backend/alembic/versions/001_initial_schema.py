"""Initial Heimursaga schema

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

Creates every table of the API: explorers and sessions, the social graph,
expeditions and entries, sponsorships and billing, payouts, messaging,
moderation flags, uploads and the webhook ledger.

Money columns are integer cents. Public identifiers are `public_id`
strings; integer keys stay internal.

Rollback: downgrade() drops every table (destructive, all data lost).
"""

from typing import List, Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> List[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def _deleted_at() -> sa.Column:
    return sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True)


def _id() -> sa.Column:
    return sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True)


def _public_id() -> sa.Column:
    return sa.Column("public_id", sa.String(32), nullable=False, unique=True)


def _user_fk(name: str = "user_id", nullable: bool = False, ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable)


def _false() -> sa.TextClause:
    return sa.text("false")


def _true() -> sa.TextClause:
    return sa.text("true")


def _zero() -> sa.TextClause:
    return sa.text("0")


def upgrade() -> None:
    # ── Explorers & sessions ──────────────────────────────────────────────
    op.create_table(
        "users",
        _id(),
        sa.Column("username", sa.String(30), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default=_false()),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=_false()),
        sa.Column("blocked", sa.Boolean(), nullable=False, server_default=_false()),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("picture", sa.String(512), nullable=True),
        sa.Column("cover_photo", sa.String(512), nullable=True),
        sa.Column("location_from", sa.String(255), nullable=True),
        sa.Column("location_lives", sa.String(255), nullable=True),
        sa.Column("website", sa.String(512), nullable=True),
        sa.Column("email_notifications", sa.Boolean(), nullable=False, server_default=_true()),
        sa.Column("followers_count", sa.Integer(), nullable=False, server_default=_zero()),
        sa.Column("following_count", sa.Integer(), nullable=False, server_default=_zero()),
        sa.Column("entries_count", sa.Integer(), nullable=False, server_default=_zero()),
        sa.Column("resting_since", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        _deleted_at(),
    )

    op.create_table(
        "user_sessions",
        _id(),
        sa.Column("sid", sa.String(128), nullable=False, unique=True),
        _user_fk(),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("expired", sa.Boolean(), nullable=False, server_default=_false()),
        _created_at(),
    )
    op.create_index("ix_user_sessions_user_id", "user_sessions", ["user_id"])

    op.create_table(
        "email_verifications",
        _id(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("token", sa.String(128), nullable=False, unique=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("expired", sa.Boolean(), nullable=False, server_default=_false()),
        _created_at(),
    )
    op.create_index("ix_email_verifications_email", "email_verifications", ["email"])

    op.create_table(
        "user_follows",
        sa.Column("follower_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("followee_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        _created_at(),
    )
    op.create_index("idx_user_follows_followee", "user_follows", ["followee_id"])

    op.create_table(
        "explorer_bookmarks",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("explorer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        _created_at(),
    )

    # ── Expeditions & entries ─────────────────────────────────────────────
    op.create_table(
        "expeditions",
        _id(),
        _public_id(),
        _user_fk("author_id"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'planned'")),
        sa.Column("visibility", sa.String(32), nullable=False, server_default=sa.text("'public'")),
        sa.Column("start_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("end_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cover_image", sa.String(512), nullable=True),
        sa.Column("goal", sa.Integer(), nullable=False, server_default=_zero()),
        sa.Column("raised", sa.Integer(), nullable=False, server_default=_zero()),
        sa.Column("location_type", sa.String(16), nullable=True),
        sa.Column("location_ref", sa.String(32), nullable=True),
        sa.Column("entries_count", sa.Integer(), nullable=False, server_default=_zero()),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index("ix_expeditions_author_id", "expeditions", ["author_id"])

    op.create_table(
        "waypoints",
        _id(),
        sa.Column(
            "expedition_id", sa.Integer(),
            sa.ForeignKey("expeditions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lon", sa.Float(), nullable=False),
        sa.Column("date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default=_zero()),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index("ix_waypoints_expedition_id", "waypoints", ["expedition_id"])

    op.create_table(
        "expedition_bookmarks",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "expedition_id", sa.Integer(),
            sa.ForeignKey("expeditions.id", ondelete="CASCADE"), primary_key=True,
        ),
        _created_at(),
    )

    op.create_table(
        "entries",
        _id(),
        _public_id(),
        _user_fk("author_id"),
        sa.Column(
            "expedition_id", sa.Integer(),
            sa.ForeignKey("expeditions.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("place", sa.String(255), nullable=True),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lon", sa.Float(), nullable=True),
        sa.Column("country_code", sa.String(8), nullable=True),
        sa.Column("date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cover_image", sa.String(512), nullable=True),
        sa.Column("entry_type", sa.String(32), nullable=False, server_default=sa.text("'standard'")),
        sa.Column("visibility", sa.String(32), nullable=False, server_default=sa.text("'public'")),
        sa.Column("is_draft", sa.Boolean(), nullable=False, server_default=_false()),
        sa.Column("comments_enabled", sa.Boolean(), nullable=False, server_default=_true()),
        sa.Column("likes_count", sa.Integer(), nullable=False, server_default=_zero()),
        sa.Column("bookmarks_count", sa.Integer(), nullable=False, server_default=_zero()),
        sa.Column("comments_count", sa.Integer(), nullable=False, server_default=_zero()),
        sa.Column("views_count", sa.Integer(), nullable=False, server_default=_zero()),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index("ix_entries_author_id", "entries", ["author_id"])
    op.create_index("ix_entries_expedition_id", "entries", ["expedition_id"])
    op.create_index("idx_entries_public_feed", "entries", ["visibility", "is_draft", "id"])
    op.create_index("idx_entries_coords", "entries", ["lat", "lon"])

    for table in ("entry_likes", "entry_bookmarks"):
        op.create_table(
            table,
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("entry_id", sa.Integer(), sa.ForeignKey("entries.id", ondelete="CASCADE"), primary_key=True),
            _created_at(),
        )

    op.create_table(
        "comments",
        _id(),
        _public_id(),
        sa.Column("entry_id", sa.Integer(), sa.ForeignKey("entries.id", ondelete="CASCADE"), nullable=False),
        _user_fk("author_id"),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index("ix_comments_entry_id", "comments", ["entry_id"])
    op.create_index("ix_comments_parent_id", "comments", ["parent_id"])

    # ── Sponsorships & billing ────────────────────────────────────────────
    op.create_table(
        "sponsorship_tiers",
        _id(),
        _public_id(),
        _user_fk(),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("slot", sa.Integer(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=_true()),
        *_timestamps(),
        _deleted_at(),
        sa.UniqueConstraint("user_id", "type", "slot", name="uq_sponsorship_tiers_slot"),
    )
    op.create_index("ix_sponsorship_tiers_user_id", "sponsorship_tiers", ["user_id"])

    op.create_table(
        "checkouts",
        _id(),
        _public_id(),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("transaction", sa.String(20), nullable=False, server_default=sa.text("'sponsorship'")),
        sa.Column("total", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False, server_default=sa.text("'usd'")),
        _user_fk(),
        _user_fk("creator_id", nullable=True, ondelete="SET NULL"),
        sa.Column(
            "tier_id", sa.Integer(),
            sa.ForeignKey("sponsorship_tiers.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("kind", sa.String(32), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("email_delivery", sa.Boolean(), nullable=False, server_default=_true()),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_checkouts_user_id", "checkouts", ["user_id"])
    op.create_index("ix_checkouts_stripe_payment_intent_id", "checkouts", ["stripe_payment_intent_id"])

    op.create_table(
        "sponsorships",
        _id(),
        _public_id(),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False, server_default=sa.text("'usd'")),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("email_delivery_enabled", sa.Boolean(), nullable=False, server_default=_true()),
        _user_fk(),
        _user_fk("creator_id"),
        sa.Column(
            "tier_id", sa.Integer(),
            sa.ForeignKey("sponsorship_tiers.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column(
            "checkout_id", sa.Integer(),
            sa.ForeignKey("checkouts.id", ondelete="SET NULL"), nullable=True, unique=True,
        ),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("expiry", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index("ix_sponsorships_user_id", "sponsorships", ["user_id"])
    op.create_index("ix_sponsorships_creator_id", "sponsorships", ["creator_id"])
    op.create_index("ix_sponsorships_stripe_subscription_id", "sponsorships", ["stripe_subscription_id"])
    op.create_index("idx_sponsorships_creator_status", "sponsorships", ["creator_id", "status"])

    op.create_table(
        "payment_methods",
        _id(),
        _public_id(),
        _user_fk(),
        sa.Column("stripe_payment_method_id", sa.String(255), nullable=False),
        sa.Column("label", sa.String(64), nullable=True),
        sa.Column("last4", sa.String(4), nullable=True),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index("ix_payment_methods_user_id", "payment_methods", ["user_id"])

    op.create_table(
        "subscriptions",
        _id(),
        _public_id(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("period", sa.String(8), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("expiry", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_subscriptions_stripe_subscription_id", "subscriptions", ["stripe_subscription_id"])

    # ── Payouts ───────────────────────────────────────────────────────────
    op.create_table(
        "payout_methods",
        _id(),
        _public_id(),
        _user_fk(),
        sa.Column("platform", sa.String(16), nullable=False, server_default=sa.text("'stripe'")),
        sa.Column("stripe_account_id", sa.String(255), nullable=True, unique=True),
        sa.Column("business_type", sa.String(32), nullable=True),
        sa.Column("country", sa.String(2), nullable=True),
        sa.Column("currency", sa.String(8), nullable=False, server_default=sa.text("'usd'")),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=_false()),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index("ix_payout_methods_user_id", "payout_methods", ["user_id"])

    op.create_table(
        "payouts",
        _id(),
        _public_id(),
        _user_fk(),
        sa.Column(
            "payout_method_id", sa.Integer(),
            sa.ForeignKey("payout_methods.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False, server_default=sa.text("'usd'")),
        sa.Column("stripe_payout_id", sa.String(255), nullable=True, unique=True),
        sa.Column("arrival_date", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payouts_user_id", "payouts", ["user_id"])

    # ── Notifications & messages ──────────────────────────────────────────
    op.create_table(
        "notifications",
        _id(),
        _public_id(),
        _user_fk(),
        sa.Column("context", sa.String(32), nullable=False),
        _user_fk("mention_user_id", nullable=True, ondelete="SET NULL"),
        sa.Column(
            "mention_entry_id", sa.Integer(),
            sa.ForeignKey("entries.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("sponsorship_type", sa.String(32), nullable=True),
        sa.Column("sponsorship_amount", sa.Integer(), nullable=True),
        sa.Column("sponsorship_currency", sa.String(8), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=_false()),
        _created_at(),
    )
    op.create_index("idx_notifications_user_read", "notifications", ["user_id", "is_read"])

    op.create_table(
        "messages",
        _id(),
        _public_id(),
        _user_fk("sender_id"),
        _user_fk("recipient_id"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=_false()),
        sa.Column("read_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])
    op.create_index("ix_messages_recipient_id", "messages", ["recipient_id"])

    # ── Moderation, uploads, webhooks ─────────────────────────────────────
    op.create_table(
        "flags",
        _id(),
        _public_id(),
        _user_fk("reporter_id"),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column(
            "flagged_entry_id", sa.Integer(),
            sa.ForeignKey("entries.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column(
            "flagged_comment_id", sa.Integer(),
            sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=True,
        ),
        _user_fk("reviewed_by_id", nullable=True, ondelete="SET NULL"),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("action_taken", sa.String(32), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_flags_status", "flags", ["status"])

    op.create_table(
        "uploads",
        _id(),
        _public_id(),
        _user_fk(),
        sa.Column("context", sa.String(16), nullable=False),
        sa.Column("path", sa.String(512), nullable=False),
        sa.Column("mime_type", sa.String(64), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        *_timestamps(),
        _deleted_at(),
    )
    op.create_index("ix_uploads_user_id", "uploads", ["user_id"])

    op.create_table(
        "processed_webhook_events",
        _id(),
        sa.Column("event_id", sa.String(255), nullable=False, unique=True),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column(
            "processed_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    )


def downgrade() -> None:
    for table in (
        "processed_webhook_events",
        "uploads",
        "flags",
        "messages",
        "notifications",
        "payouts",
        "payout_methods",
        "subscriptions",
        "payment_methods",
        "sponsorships",
        "checkouts",
        "sponsorship_tiers",
        "comments",
        "entry_bookmarks",
        "entry_likes",
        "entries",
        "expedition_bookmarks",
        "waypoints",
        "expeditions",
        "explorer_bookmarks",
        "user_follows",
        "email_verifications",
        "user_sessions",
        "users",
    ):
        op.drop_table(table)
