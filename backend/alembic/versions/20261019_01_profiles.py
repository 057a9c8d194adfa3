"""Profiles table for the remote profile store."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_01_profiles"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("telegram_id", sa.String(length=64), nullable=False),
        sa.Column("username", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="STUDENT"),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.CheckConstraint("xp >= 0", name="ck_profiles_xp_non_negative"),
        sa.CheckConstraint("level >= 1", name="ck_profiles_level_positive"),
    )
    op.create_index("ix_profiles_telegram_id", "profiles", ["telegram_id"], unique=True)
    op.create_index("ix_profiles_xp", "profiles", ["xp"])


def downgrade() -> None:
    op.drop_index("ix_profiles_xp", table_name="profiles")
    op.drop_index("ix_profiles_telegram_id", table_name="profiles")
    op.drop_table("profiles")
