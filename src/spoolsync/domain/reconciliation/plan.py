"""Sync planner: decisions in, ordered and dependency-safe operations out.

The plan is the contract between the merge policy and plan execution:
- field decisions for one (side, profile) collapse into a single update
- creates and updates run ancestors first, deletes run descendants first, so
  the backend never sees a child whose parent does not exist
- conflicts and skips are carried along for reporting and never become
  operations
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from spoolsync.domain.model import PropertyScalar

from .contracts import ChangeKind, Conflict, Decision, Direction
from .errors import InvalidTransition

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .contracts import Verdict

log = getLogger(__name__)


class SyncSide(StrEnum):
    """Store an operation is executed against."""

    REMOTE = "remote"
    LOCAL = "local"


class OperationKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class OperationState(StrEnum):
    PENDING = "pending"
    APPLIED = "applied"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    RETRYING = "retrying"
    ABANDONED = "abandoned"


_TRANSITIONS: dict[OperationState, frozenset[OperationState]] = {
    OperationState.PENDING: frozenset(
        {OperationState.APPLIED, OperationState.FAILED, OperationState.ABANDONED}
    ),
    OperationState.APPLIED: frozenset({OperationState.CONFIRMED}),
    OperationState.FAILED: frozenset({OperationState.RETRYING, OperationState.ABANDONED}),
    OperationState.RETRYING: frozenset(
        {OperationState.APPLIED, OperationState.FAILED, OperationState.ABANDONED}
    ),
    OperationState.CONFIRMED: frozenset(),
    OperationState.ABANDONED: frozenset(),
}


@dataclass(slots=True, kw_only=True)
class SyncOperation:
    """One backend call plus its lifecycle state.

    ``chain`` is the root profile of the inheritance chain the target belongs
    to; operations sharing a chain must run in plan order.
    """

    target_id: str
    side: SyncSide
    kind: OperationKind
    payload: dict[str, PropertyScalar] = field(default_factory=dict[str, PropertyScalar])
    parent_id: str | None = None
    revision: int | None = None
    chain: str = ""
    state: OperationState = OperationState.PENDING
    attempts: int = 0
    error: str | None = None
    remote_ref: str | None = None
    history: list[OperationState] = field(default_factory=list[OperationState])

    def __post_init__(self) -> None:
        if not self.chain:
            self.chain = self.target_id
        if not self.history:
            self.history.append(self.state)

    @property
    def key(self) -> str:
        """Stable idempotency key; equal operations share a key across retries and passes."""

        document = json.dumps(
            {
                "side": str(self.side),
                "kind": str(self.kind),
                "target": self.target_id,
                "parent": self.parent_id,
                "payload": self.payload,
                "revision": self.revision,
            },
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(document.encode("utf-8")).hexdigest()[:32]

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    def can_transition(self, state: OperationState) -> bool:
        return state in _TRANSITIONS[self.state]

    def transition(self, state: OperationState, *, error: str | None = None) -> None:
        if not self.can_transition(state):
            raise InvalidTransition(self.state, state)
        log.debug("Operation %s %s: %s -> %s", self.kind, self.target_id, self.state, state)
        self.state = state
        self.history.append(state)
        if error is not None:
            self.error = error

    def describe(self) -> str:
        return f"{self.side}:{self.kind}:{self.target_id}"


@dataclass(slots=True)
class SyncPlan:
    """Ordered operations of one reconciliation pass, with what was held back."""

    operations: list[SyncOperation] = field(default_factory=list[SyncOperation])
    conflicts: list[Conflict] = field(default_factory=list[Conflict])
    skipped: list[Decision] = field(default_factory=list[Decision])
    hierarchy: dict[str, str | None] = field(default_factory=dict[str, str | None])

    @property
    def is_empty(self) -> bool:
        return not self.operations

    def operations_for(self, side: SyncSide) -> list[SyncOperation]:
        return [operation for operation in self.operations if operation.side is side]


@dataclass(slots=True)
class _Pending:
    side: SyncSide
    kind: OperationKind
    target_id: str
    payload: dict[str, PropertyScalar]
    revision: int | None
    changes: list[Decision]
    # fields two descendants pulled different values for
    poisoned: set[str] = field(default_factory=set[str])


@dataclass(frozen=True, slots=True)
class SyncPlanner:
    """Build a ``SyncPlan`` from merge-policy verdicts."""

    def plan(
        self,
        verdicts: Iterable[Verdict],
        *,
        local_hierarchy: Mapping[str, str | None],
        remote_hierarchy: Mapping[str, str | None],
    ) -> SyncPlan:
        plan = SyncPlan()
        pending: dict[tuple[SyncSide, str], _Pending] = {}

        for verdict in verdicts:
            if isinstance(verdict, Conflict):
                plan.conflicts.append(verdict)
                continue
            if verdict.direction is Direction.SKIP:
                plan.skipped.append(verdict)
                continue
            plan.conflicts.extend(self._collect(verdict, pending))

        hierarchy = {**remote_hierarchy, **local_hierarchy}
        plan.hierarchy = hierarchy
        for entry in pending.values():
            if entry.kind is OperationKind.UPDATE and not entry.payload:
                continue
            source = local_hierarchy if entry.side is SyncSide.REMOTE else remote_hierarchy
            parent_id = source.get(entry.target_id, hierarchy.get(entry.target_id))
            plan.operations.append(
                SyncOperation(
                    target_id=entry.target_id,
                    side=entry.side,
                    kind=entry.kind,
                    payload=entry.payload,
                    parent_id=parent_id,
                    revision=entry.revision,
                    chain=_root_of(entry.target_id, hierarchy),
                )
            )

        plan.operations = _order(plan.operations, hierarchy)
        log.debug(
            "Planned %s operations (%s conflicts, %s skipped)",
            len(plan.operations),
            len(plan.conflicts),
            len(plan.skipped),
        )
        return plan

    def _collect(
        self,
        decision: Decision,
        pending: dict[tuple[SyncSide, str], _Pending],
    ) -> list[Conflict]:
        change = decision.change
        push = decision.direction is Direction.PUSH_LOCAL_TO_REMOTE
        side = SyncSide.REMOTE if push else SyncSide.LOCAL
        revision = change.local_revision if push else change.remote_revision
        slot = (side, decision.target_id)

        if change.is_profile_level:
            created_here = (change.kind is ChangeKind.ADDED) == push
            if created_here:
                values = change.local_value if push else change.remote_value
                payload = dict(values) if isinstance(values, dict) else {}
                kind = OperationKind.CREATE
            else:
                payload = {}
                kind = OperationKind.DELETE
            pending[slot] = _Pending(side, kind, decision.target_id, payload, revision, [decision])
            return []

        name = change.property_name
        value = change.local_value if push else change.remote_value
        if name is None or isinstance(value, dict):
            raise TypeError(f"Malformed field change for {change.profile_id}")

        entry = pending.get(slot)
        if entry is None:
            entry = pending[slot] = _Pending(
                side, OperationKind.UPDATE, decision.target_id, {}, revision, []
            )
        elif entry.kind is not OperationKind.UPDATE:
            return [Conflict(change=change, reason=f"target_{entry.kind}_planned")]

        if name in entry.poisoned:
            return [Conflict(change=change, reason="divergent_upward_values")]
        if name in entry.payload and entry.payload[name] != value:
            # two descendants pulled different values into one ancestor; every
            # decision for the field is held back, earlier ones included
            del entry.payload[name]
            entry.poisoned.add(name)
            earlier = [kept for kept in entry.changes if kept.change.property_name == name]
            entry.changes = [kept for kept in entry.changes if kept not in earlier]
            return [
                Conflict(change=held.change, reason="divergent_upward_values")
                for held in (*earlier, decision)
            ]
        entry.payload[name] = value
        entry.changes.append(decision)
        if revision is not None:
            entry.revision = max(entry.revision or 0, revision)
        return []


def _root_of(profile_id: str, hierarchy: Mapping[str, str | None]) -> str:
    current = profile_id
    seen = {current}
    while (parent := hierarchy.get(current)) is not None and parent not in seen:
        seen.add(parent)
        current = parent
    return current


def _depth_of(profile_id: str, hierarchy: Mapping[str, str | None]) -> int:
    depth = 0
    current = profile_id
    seen = {current}
    while (parent := hierarchy.get(current)) is not None and parent not in seen:
        seen.add(parent)
        current = parent
        depth += 1
    return depth


def _order(
    operations: list[SyncOperation],
    hierarchy: Mapping[str, str | None],
) -> list[SyncOperation]:
    def forward(operation: SyncOperation) -> tuple[int, str, str]:
        return (_depth_of(operation.target_id, hierarchy), operation.target_id, operation.side)

    upserts = sorted(
        (operation for operation in operations if operation.kind is not OperationKind.DELETE),
        key=forward,
    )
    deletes = sorted(
        (operation for operation in operations if operation.kind is OperationKind.DELETE),
        key=lambda operation: (-forward(operation)[0], *forward(operation)[1:]),
    )
    return [*upserts, *deletes]
