"""Reconciliation core for filament profiles.

Layered flow of one pass:
1) load each snapshot into a validated profile graph
2) resolve effective values through inheritance and tag rules
3) diff the resolved local and remote views
4) decide a direction per change with the merge policy
5) plan ordered, dependency-safe operations
6) execute the plan against the backends and confirm the result
"""

from __future__ import annotations

from .contracts import ChangeKind, ChangeRecord, Conflict, Decision, Direction, Verdict
from .diff import diff_profiles
from .engine import ReconciliationEngine, ReconciliationResult
from .errors import (
    AmbiguousTagPrecedence,
    BackendUnavailable,
    CycleDetected,
    DuplicateProfile,
    InvalidTransition,
    OperationRejected,
    PartialSyncFailure,
    PassInProgress,
    ReconciliationError,
    UnknownParentReference,
)
from .execute import ExecutionSettings, PlanExecutor, SyncReport
from .graph import ProfileGraph
from .plan import OperationKind, OperationState, SyncOperation, SyncPlan, SyncPlanner, SyncSide
from .policy import MergePolicy
from .resolve import resolve_profiles

__all__ = [
    "AmbiguousTagPrecedence",
    "BackendUnavailable",
    "ChangeKind",
    "ChangeRecord",
    "Conflict",
    "CycleDetected",
    "Decision",
    "Direction",
    "DuplicateProfile",
    "ExecutionSettings",
    "InvalidTransition",
    "MergePolicy",
    "OperationKind",
    "OperationRejected",
    "OperationState",
    "PartialSyncFailure",
    "PassInProgress",
    "PlanExecutor",
    "ProfileGraph",
    "ReconciliationEngine",
    "ReconciliationError",
    "ReconciliationResult",
    "SyncOperation",
    "SyncPlan",
    "SyncPlanner",
    "SyncReport",
    "SyncSide",
    "UnknownParentReference",
    "Verdict",
    "diff_profiles",
    "resolve_profiles",
]
