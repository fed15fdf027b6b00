"""Registrations and players

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Changes:
  - Create registrations table (status + processed flag, payment_info JSON,
    submission_key for idempotent inserts)
  - Create players table, at most one player per registration
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── registrations ─────────────────────────────────────────────────────────
    op.create_table(
        "registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("submission_key", sa.String(36), nullable=True),
        sa.Column("telegram_id", sa.BigInteger(), nullable=True),
        sa.Column("player_name", sa.String(255), nullable=False),
        sa.Column("birth_date", sa.String(10), nullable=False),
        sa.Column("player_dni", sa.String(20), nullable=False),
        sa.Column("team", sa.String(100), nullable=False),
        sa.Column("parent_name", sa.String(255), nullable=False),
        sa.Column("contact_phone", sa.String(30), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("postal_code", sa.String(10), nullable=True),
        sa.Column("shirt_size", sa.String(10), nullable=True),
        sa.Column("accept_terms", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("season", sa.String(20), nullable=True),
        sa.Column("comments", sa.String(1000), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_info", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("submission_key", name="uq_registrations_submission_key"),
    )
    op.create_index("ix_registrations_telegram_id", "registrations", ["telegram_id"])
    op.create_index("ix_registrations_status", "registrations", ["status"])

    # ── players ───────────────────────────────────────────────────────────────
    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "registration_id",
            sa.Integer(),
            sa.ForeignKey("registrations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("birth_date", sa.String(10), nullable=True),
        sa.Column("dni", sa.String(20), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("postal_code", sa.String(10), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("notes", sa.String(1000), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        # Last line of defence against a second player for one registration
        sa.UniqueConstraint("registration_id", name="uq_players_registration_id"),
    )


def downgrade() -> None:
    op.drop_table("players")
    op.drop_index("ix_registrations_status", table_name="registrations")
    op.drop_index("ix_registrations_telegram_id", table_name="registrations")
    op.drop_table("registrations")
