"""Plan execution against the profile backends.

Operations are grouped by inheritance chain. A chain runs serially in plan
order because a child's create needs its parent to exist on the target side;
independent chains run concurrently, bounded by ``max_parallel_chains``.

Per operation:
- ``BackendUnavailable``: failed, then retried with exponential backoff until
  ``max_attempts`` is reached, then abandoned
- ``OperationRejected``: failed and abandoned at once
- cancellation: every operation not yet applied is abandoned, nothing is
  rolled back

After the chains finish, each involved backend is fetched once more and
applied operations whose payload is visible there become confirmed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from .contracts import Conflict
from .errors import BackendUnavailable, OperationRejected, PartialSyncFailure
from .plan import OperationKind, OperationState, SyncOperation, SyncSide

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence

    from spoolsync.domain.model import Profile
    from spoolsync.domain.ports import ProfileBackend

    from .plan import SyncPlan

log = getLogger(__name__)

type Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True, kw_only=True)
class ExecutionSettings:
    max_attempts: int = 5
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 30.0
    max_parallel_chains: int = 4
    confirm: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.max_parallel_chains < 1:
            raise ValueError("max_parallel_chains must be at least 1")

    def backoff_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""

        return min(self.backoff_base_seconds * 2 ** (attempt - 1), self.backoff_max_seconds)


@dataclass(slots=True)
class SyncReport:
    """Outcome of executing one plan."""

    operations: list[SyncOperation] = field(default_factory=list[SyncOperation])
    conflicts: list[Conflict] = field(default_factory=list[Conflict])

    def counts(self) -> dict[OperationState, int]:
        counts: dict[OperationState, int] = {}
        for state in OperationState:
            total = sum(1 for operation in self.operations if operation.state is state)
            if total:
                counts[state] = total
        return counts

    def in_state(self, state: OperationState) -> list[SyncOperation]:
        return [operation for operation in self.operations if operation.state is state]

    @property
    def unverified(self) -> list[SyncOperation]:
        """Applied operations whose effect could not be observed on refetch."""

        return self.in_state(OperationState.APPLIED)

    @property
    def is_partial(self) -> bool:
        return any(
            operation.state is not OperationState.CONFIRMED for operation in self.operations
        )

    def raise_for_failures(self) -> None:
        if self.in_state(OperationState.ABANDONED) or self.in_state(OperationState.FAILED):
            raise PartialSyncFailure(self)


class PlanExecutor:
    """Apply a ``SyncPlan`` through one backend per side."""

    def __init__(
        self,
        backends: Mapping[SyncSide, ProfileBackend],
        settings: ExecutionSettings | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._backends = dict(backends)
        self._settings = settings or ExecutionSettings()
        self._sleep = sleep

    async def execute(self, plan: SyncPlan) -> SyncReport:
        report = SyncReport(operations=list(plan.operations), conflicts=list(plan.conflicts))
        if plan.is_empty:
            return report

        missing = {operation.side for operation in plan.operations} - set(self._backends)
        if missing:
            raise ValueError(f"No backend configured for: {', '.join(sorted(missing))}")

        chains: dict[str, list[SyncOperation]] = {}
        for operation in plan.operations:
            chains.setdefault(operation.chain, []).append(operation)

        semaphore = asyncio.Semaphore(self._settings.max_parallel_chains)
        log.info("Executing %s operations in %s chains", len(plan.operations), len(chains))
        try:
            async with asyncio.TaskGroup() as group:
                for operations in chains.values():
                    group.create_task(self._run_chain(operations, plan.hierarchy, semaphore))
        finally:
            # no-op after a clean run: every operation is applied or abandoned by then
            _abandon_unapplied(plan.operations, "interrupted before apply")

        if self._settings.confirm:
            await self._confirm(plan.operations)
        return report

    async def _run_chain(
        self,
        operations: list[SyncOperation],
        hierarchy: Mapping[str, str | None],
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            for index, operation in enumerate(operations):
                if operation.state is not OperationState.PENDING:
                    continue
                if await self._apply(operation):
                    continue
                for later in operations[index + 1 :]:
                    if later.state is OperationState.PENDING and _depends_on(
                        later, operation, hierarchy
                    ):
                        later.transition(
                            OperationState.ABANDONED,
                            error=f"depends on abandoned {operation.describe()}",
                        )
                        log.warning("Abandoned %s: %s", later.describe(), later.error)

    async def _apply(self, operation: SyncOperation) -> bool:
        backend = self._backends[operation.side]
        while True:
            operation.attempts += 1
            try:
                outcome = await backend.apply(operation)
            except OperationRejected as exc:
                operation.transition(OperationState.FAILED, error=str(exc))
                operation.transition(OperationState.ABANDONED)
                log.error("Rejected %s: %s", operation.describe(), exc)
                return False
            except BackendUnavailable as exc:
                operation.transition(OperationState.FAILED, error=str(exc))
                if operation.attempts >= self._settings.max_attempts:
                    operation.transition(OperationState.ABANDONED)
                    log.warning(
                        "Giving up on %s after %s attempts: %s",
                        operation.describe(),
                        operation.attempts,
                        exc,
                    )
                    return False
                delay = self._settings.backoff_for(operation.attempts)
                log.warning(
                    "Backend unavailable for %s (attempt %s), retrying in %.1fs",
                    operation.describe(),
                    operation.attempts,
                    delay,
                )
                operation.transition(OperationState.RETRYING)
                await self._sleep(delay)
                continue

            operation.transition(OperationState.APPLIED)
            operation.remote_ref = outcome.remote_ref
            log.debug(
                "Applied %s%s", operation.describe(), " (replayed)" if outcome.replayed else ""
            )
            return True

    async def _confirm(self, operations: Sequence[SyncOperation]) -> None:
        applied = [
            operation for operation in operations if operation.state is OperationState.APPLIED
        ]
        for side in sorted({operation.side for operation in applied}):
            try:
                snapshot = await self._backends[side].fetch_snapshot()
            except BackendUnavailable as exc:
                log.warning("Could not confirm %s operations: %s", side, exc)
                continue
            index = {profile.profile_id: profile for profile in snapshot}
            for operation in applied:
                if operation.side is not side:
                    continue
                if _is_visible(operation, index):
                    operation.transition(OperationState.CONFIRMED)
                else:
                    log.warning("Unverified %s", operation.describe())


def _abandon_unapplied(operations: Sequence[SyncOperation], reason: str) -> None:
    for operation in operations:
        if operation.can_transition(OperationState.ABANDONED):
            operation.transition(OperationState.ABANDONED, error=reason)


def _depends_on(
    later: SyncOperation,
    failed: SyncOperation,
    hierarchy: Mapping[str, str | None],
) -> bool:
    if later.side is not failed.side:
        return False
    if failed.kind is OperationKind.DELETE:
        return later.kind is OperationKind.DELETE and _is_ancestor(
            later.target_id, failed.target_id, hierarchy
        )
    # a descendant resolves against the parent state the failed write left behind
    return later.kind is not OperationKind.DELETE and _is_ancestor(
        failed.target_id, later.target_id, hierarchy
    )


def _is_ancestor(candidate: str, profile_id: str, hierarchy: Mapping[str, str | None]) -> bool:
    seen = {profile_id}
    current = hierarchy.get(profile_id)
    while current is not None and current not in seen:
        if current == candidate:
            return True
        seen.add(current)
        current = hierarchy.get(current)
    return False


def _is_visible(operation: SyncOperation, index: Mapping[str, Profile]) -> bool:
    profile = index.get(operation.target_id)
    if operation.kind is OperationKind.DELETE:
        return profile is None
    if profile is None:
        return False
    for name, value in operation.payload.items():
        declared = profile.properties.get(name)
        observed = declared.value if declared is not None else None
        if observed != value:
            return False
    return True
