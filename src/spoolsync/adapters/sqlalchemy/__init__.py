"""SQLAlchemy adapter package for the sync journal."""

from __future__ import annotations

from .repositories import (
    SqlAlchemyOperationLogRepository,
    SqlAlchemySyncStateRepository,
    SqlAlchemyTagRuleRepository,
)
from .tables import (
    metadata,
    sync_operation_log_table,
    synced_profile_table,
    tag_rule_table,
)

__all__ = [
    "SqlAlchemyOperationLogRepository",
    "SqlAlchemySyncStateRepository",
    "SqlAlchemyTagRuleRepository",
    "metadata",
    "sync_operation_log_table",
    "synced_profile_table",
    "tag_rule_table",
]
