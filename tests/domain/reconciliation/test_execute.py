from __future__ import annotations

import asyncio

import pytest

from spoolsync.adapters.memory import InMemoryBackend
from spoolsync.domain.model import Profile, PropertyScalar
from spoolsync.domain.ports import ApplyOutcome
from spoolsync.domain.reconciliation import (
    BackendUnavailable,
    ExecutionSettings,
    OperationKind,
    OperationRejected,
    OperationState,
    PartialSyncFailure,
    PlanExecutor,
    SyncOperation,
    SyncPlan,
    SyncSide,
)
from tests.helpers.profiles import remote_profile

HIERARCHY: dict[str, str | None] = {"pla": None, "pla-red": "pla", "petg": None}


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _create(target_id: str, payload: dict[str, PropertyScalar] | None = None) -> SyncOperation:
    return SyncOperation(
        target_id=target_id,
        side=SyncSide.REMOTE,
        kind=OperationKind.CREATE,
        payload=payload if payload is not None else {"filament_type": "PLA"},
        parent_id=HIERARCHY.get(target_id),
        revision=100,
        chain="petg" if target_id == "petg" else "pla",
    )


def _plan(*operations: SyncOperation) -> SyncPlan:
    return SyncPlan(operations=list(operations), hierarchy=dict(HIERARCHY))


def _execute(
    backend: InMemoryBackend,
    plan: SyncPlan,
    settings: ExecutionSettings | None = None,
    sleep: _RecordingSleep | None = None,
):
    executor = PlanExecutor(
        {SyncSide.REMOTE: backend}, settings, sleep=sleep or _RecordingSleep()
    )
    return asyncio.run(executor.execute(plan))


def test_applied_operations_are_confirmed_by_refetch() -> None:
    backend = InMemoryBackend()
    plan = _plan(_create("pla"), _create("pla-red"))

    report = _execute(backend, plan)

    assert report.counts() == {OperationState.CONFIRMED: 2}
    assert not report.is_partial
    assert backend.profiles["pla-red"].parent_id == "pla"
    assert backend.calls == ["remote:create:pla", "remote:create:pla-red"]
    report.raise_for_failures()


def test_unavailable_backend_is_retried_with_backoff() -> None:
    backend = InMemoryBackend()
    backend.fail("pla", BackendUnavailable("down"), BackendUnavailable("still down"))
    sleep = _RecordingSleep()
    operation = _create("pla")

    _execute(backend, _plan(operation), ExecutionSettings(backoff_base_seconds=0.5), sleep)

    assert operation.state is OperationState.CONFIRMED
    assert operation.attempts == 3
    assert sleep.delays == [0.5, 1.0]
    assert operation.history == [
        OperationState.PENDING,
        OperationState.FAILED,
        OperationState.RETRYING,
        OperationState.FAILED,
        OperationState.RETRYING,
        OperationState.APPLIED,
        OperationState.CONFIRMED,
    ]


def test_operation_is_abandoned_after_max_attempts() -> None:
    backend = InMemoryBackend()
    backend.fail("pla", BackendUnavailable("down"), BackendUnavailable("down"))
    sleep = _RecordingSleep()
    operation = _create("pla")

    report = _execute(backend, _plan(operation), ExecutionSettings(max_attempts=2), sleep)

    assert operation.state is OperationState.ABANDONED
    assert operation.attempts == 2
    assert operation.error == "down"
    assert sleep.delays == [0.5]
    with pytest.raises(PartialSyncFailure, match="abandoned=1") as exc:
        report.raise_for_failures()
    assert exc.value.report is report


def test_rejected_operation_abandons_its_dependants_only() -> None:
    backend = InMemoryBackend()
    backend.fail("pla", OperationRejected("invalid density"))
    sleep = _RecordingSleep()
    parent, child, other = _create("pla"), _create("pla-red"), _create("petg")

    report = _execute(backend, _plan(parent, child, other), sleep=sleep)

    assert parent.state is OperationState.ABANDONED
    assert parent.attempts == 1
    assert parent.error == "invalid density"
    assert child.state is OperationState.ABANDONED
    assert child.attempts == 0
    assert child.error == "depends on abandoned remote:create:pla"
    assert other.state is OperationState.CONFIRMED
    assert sleep.delays == []
    assert report.is_partial


def test_rejected_parent_update_abandons_child_update() -> None:
    backend = InMemoryBackend.with_profiles(
        [
            remote_profile("pla", values={"filament_density": 1.24}),
            remote_profile("pla-red", parent_id="pla", values={"filament_density": 1.24}),
        ]
    )
    backend.fail("pla", OperationRejected("density out of range"))
    parent, child = (
        SyncOperation(
            target_id=target_id,
            side=SyncSide.REMOTE,
            kind=OperationKind.UPDATE,
            payload={"filament_density": 1.3},
            parent_id=HIERARCHY[target_id],
            revision=200,
            chain="pla",
        )
        for target_id in ("pla", "pla-red")
    )

    report = _execute(backend, _plan(parent, child))

    assert parent.state is OperationState.ABANDONED
    assert child.state is OperationState.ABANDONED
    assert child.error == "depends on abandoned remote:update:pla"
    assert backend.calls == ["remote:update:pla"]
    assert backend.profiles["pla-red"].properties["filament_density"].value == 1.24
    assert report.counts() == {OperationState.ABANDONED: 2}


def test_invisible_write_stays_unverified() -> None:
    backend = InMemoryBackend(drop_writes=True)
    operation = _create("pla")

    report = _execute(backend, _plan(operation))

    assert operation.state is OperationState.APPLIED
    assert report.unverified == [operation]
    assert report.is_partial
    report.raise_for_failures()


def test_replayed_operation_is_not_applied_twice() -> None:
    backend = InMemoryBackend()

    _execute(backend, _plan(_create("pla")))
    replay = _create("pla")
    _execute(backend, _plan(replay))

    assert replay.state is OperationState.CONFIRMED
    assert len(backend.applied_keys) == 1
    assert len(backend.calls) == 2


def test_delete_is_confirmed_when_the_profile_is_gone() -> None:
    backend = InMemoryBackend.with_profiles([remote_profile("pla")])
    operation = SyncOperation(target_id="pla", side=SyncSide.REMOTE, kind=OperationKind.DELETE)

    _execute(backend, _plan(operation))

    assert operation.state is OperationState.CONFIRMED
    assert backend.profiles == {}


def test_missing_backend_is_rejected() -> None:
    operation = SyncOperation(target_id="pla", side=SyncSide.LOCAL, kind=OperationKind.DELETE)

    with pytest.raises(ValueError, match="local"):
        _execute(InMemoryBackend(), _plan(operation))


def test_empty_plan_touches_nothing() -> None:
    backend = InMemoryBackend()
    backend.unavailable = True

    report = _execute(backend, SyncPlan())

    assert report.operations == []
    assert report.counts() == {}


class _BlockingBackend:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def fetch_snapshot(self) -> list[Profile]:
        return []

    async def apply(self, operation: SyncOperation) -> ApplyOutcome:
        self.started.set()
        await asyncio.Event().wait()
        return ApplyOutcome()


def test_cancellation_abandons_unapplied_operations() -> None:
    backend = _BlockingBackend()
    parent, child = _create("pla"), _create("pla-red")
    executor = PlanExecutor({SyncSide.REMOTE: backend})

    async def scenario() -> None:
        task = asyncio.create_task(executor.execute(_plan(parent, child)))
        await backend.started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert parent.state is OperationState.ABANDONED
    assert child.state is OperationState.ABANDONED
    assert child.error == "interrupted before apply"


def test_execution_settings_validation_and_backoff() -> None:
    settings = ExecutionSettings(backoff_base_seconds=0.5, backoff_max_seconds=1.5)

    assert [settings.backoff_for(attempt) for attempt in (1, 2, 3, 4)] == [0.5, 1.0, 1.5, 1.5]
    with pytest.raises(ValueError, match="max_attempts"):
        ExecutionSettings(max_attempts=0)
    with pytest.raises(ValueError, match="max_parallel_chains"):
        ExecutionSettings(max_parallel_chains=0)
