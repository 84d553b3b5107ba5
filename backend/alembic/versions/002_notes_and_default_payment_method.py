"""Expedition notes and default payment methods

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 12:00:00.000000+00:00

Adds `expedition_notes` and `expedition_note_replies`, plus the
`payment_methods.is_default` flag used for off-session Pro renewals.

Rollback: downgrade() drops both note tables (their rows are lost) and
the `is_default` column.
"""

from typing import List, Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> List[sa.Column]:
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
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.add_column(
        "payment_methods",
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )

    op.create_table(
        "expedition_notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "expedition_id", sa.Integer(),
            sa.ForeignKey("expeditions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        *_audit_columns(),
    )
    op.create_index("ix_expedition_notes_expedition_id", "expedition_notes", ["expedition_id"])

    op.create_table(
        "expedition_note_replies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "note_id", sa.Integer(),
            sa.ForeignKey("expedition_notes.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        *_audit_columns(),
    )
    op.create_index("ix_expedition_note_replies_note_id", "expedition_note_replies", ["note_id"])


def downgrade() -> None:
    op.drop_table("expedition_note_replies")
    op.drop_table("expedition_notes")
    op.drop_column("payment_methods", "is_default")
