"""Create the sync journal tables.

Revision ID: 0001
Revises:
Create Date: 2026-09-14
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tag_rule",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tag", sa.String(), nullable=False),
        sa.Column("property_name", sa.String(), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("precedence", sa.Integer(), nullable=False),
        sa.UniqueConstraint("tag", "property_name", "precedence", "value", name="uq_tag_rule"),
    )
    op.create_index("ix_tag_rule_tag", "tag_rule", ["tag"])

    op.create_table(
        "synced_profile",
        sa.Column("profile_id", sa.String(), primary_key=True),
        sa.Column("remote_ref", sa.String(), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "sync_operation_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("pass_id", sa.String(length=36), nullable=False),
        sa.Column("operation_key", sa.String(length=32), nullable=False),
        sa.Column("target_id", sa.String(), nullable=False),
        sa.Column("side", sa.String(length=16), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("state", sa.String(length=16), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sync_operation_log_pass_id", "sync_operation_log", ["pass_id"])


def downgrade() -> None:
    op.drop_index("ix_sync_operation_log_pass_id", table_name="sync_operation_log")
    op.drop_table("sync_operation_log")
    op.drop_table("synced_profile")
    op.drop_index("ix_tag_rule_tag", table_name="tag_rule")
    op.drop_table("tag_rule")
