"""Domain port definitions for adapters."""

from __future__ import annotations

from .backend import ApplyOutcome, ProfileBackend
from .persistence import (
    OperationLogRepository,
    Repository,
    SyncStateRepository,
    TagRuleRepository,
)
from .unit_of_work import ReconciliationRepositories, ReconciliationUnitOfWork

__all__ = [
    "ApplyOutcome",
    "OperationLogRepository",
    "ProfileBackend",
    "ReconciliationRepositories",
    "ReconciliationUnitOfWork",
    "Repository",
    "SyncStateRepository",
    "TagRuleRepository",
]
