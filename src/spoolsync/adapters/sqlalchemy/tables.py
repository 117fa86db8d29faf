"""SQLAlchemy Core tables for the sync journal."""

from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

tag_rule_table = Table(
    "tag_rule",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tag", String, nullable=False),
    Column("property_name", String, nullable=False),
    # JSON-encoded scalar
    Column("value", Text, nullable=False),
    Column("precedence", Integer, nullable=False, default=0),
    UniqueConstraint("tag", "property_name", "precedence", "value", name="uq_tag_rule"),
    Index("ix_tag_rule_tag", "tag"),
)

synced_profile_table = Table(
    "synced_profile",
    metadata,
    Column("profile_id", String, primary_key=True),
    Column("remote_ref", String, nullable=True),
    Column("synced_at", DateTime(timezone=True), nullable=False),
)

sync_operation_log_table = Table(
    "sync_operation_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("pass_id", String(36), nullable=False),
    Column("operation_key", String(32), nullable=False),
    Column("target_id", String, nullable=False),
    Column("side", String(16), nullable=False),
    Column("kind", String(16), nullable=False),
    Column("state", String(16), nullable=False),
    Column("attempts", Integer, nullable=False, default=0),
    Column("error", Text, nullable=True),
    Column("recorded_at", DateTime(timezone=True), nullable=False),
    Index("ix_sync_operation_log_pass_id", "pass_id"),
)
