from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

import pytest

from spoolsync.adapters.memory import InMemoryBackend
from spoolsync.app import (
    add_tag_rule,
    last_pass_history,
    list_tag_rules,
    remove_tag_rule,
    run_reconciliation_pass,
    run_service,
)
from spoolsync.config import SyncConfig
from spoolsync.domain.model import ProfileOrigin, TagRule
from spoolsync.domain.reconciliation import OperationRejected, OperationState, PassInProgress
from tests.helpers.profiles import make_profile

if TYPE_CHECKING:
    from collections.abc import Callable

    from spoolsync.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork
    from spoolsync.app import PassOutcome
    from spoolsync.domain.model import Profile
    from spoolsync.domain.ports import ApplyOutcome
    from spoolsync.domain.reconciliation import SyncOperation

    UnitOfWorkFactory = Callable[[], SqlAlchemyUnitOfWork]


class MonkeyPatch(Protocol):
    def setattr(self, target: str, value: object) -> None: ...


def _local(*, tags: frozenset[str] = frozenset()) -> InMemoryBackend:
    return InMemoryBackend.with_profiles(
        [
            make_profile("pla", values={"filament_type": "PLA"}, tags=tags),
            make_profile("pla-red", parent_id="pla", values={"filament_colour": "#FF0000"}),
        ],
        origin=ProfileOrigin.LOCAL,
    )


def _pass(
    local: InMemoryBackend,
    remote: InMemoryBackend,
    factory: UnitOfWorkFactory,
    config: SyncConfig,
    *,
    dry_run: bool = False,
) -> PassOutcome:
    return asyncio.run(
        run_reconciliation_pass(
            local=local,
            remote=remote,
            unit_of_work_factory=factory,
            sync_config=config,
            dry_run=dry_run,
        )
    )


def test_first_pass_pushes_and_second_pass_is_a_no_op(
    sqlite_unit_of_work: UnitOfWorkFactory, sync_config: SyncConfig
) -> None:
    local, remote = _local(), InMemoryBackend()

    first = _pass(local, remote, sqlite_unit_of_work, sync_config)
    second = _pass(local, remote, sqlite_unit_of_work, sync_config)

    assert first.report is not None
    assert first.report.counts() == {OperationState.CONFIRMED: 2}
    assert sorted(remote.profiles) == ["pla", "pla-red"]
    assert remote.profiles["pla-red"].properties["filament_type"].value == "PLA"
    assert second.result.plan.is_empty
    assert not second.is_partial

    with sqlite_unit_of_work() as uow:
        repositories = uow.repositories
        assert repositories.sync_state.synced_ids() == frozenset({"pla", "pla-red"})
        assert repositories.operation_log.latest_pass_id() == first.pass_id
        entries = repositories.operation_log.for_pass(first.pass_id)
        assert {entry.state for entry in entries} == {"confirmed"}
        assert [entry.target_id for entry in entries] == ["pla", "pla-red"]


def test_dry_run_writes_nothing(
    sqlite_unit_of_work: UnitOfWorkFactory, sync_config: SyncConfig
) -> None:
    local, remote = _local(), InMemoryBackend()

    outcome = _pass(local, remote, sqlite_unit_of_work, sync_config, dry_run=True)

    assert outcome.dry_run
    assert outcome.report is None
    assert len(outcome.result.plan.operations) == 2
    assert remote.calls == []
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.operation_log.latest_pass_id() is None
        assert uow.repositories.sync_state.synced_ids() == frozenset()


def test_local_deletion_is_kept_remotely_by_default(
    sqlite_unit_of_work: UnitOfWorkFactory, sync_config: SyncConfig
) -> None:
    local, remote = _local(), InMemoryBackend()
    _pass(local, remote, sqlite_unit_of_work, sync_config)
    del local.profiles["pla-red"]

    outcome = _pass(local, remote, sqlite_unit_of_work, sync_config)

    assert outcome.result.plan.is_empty
    assert [decision.reason for decision in outcome.result.plan.skipped] == [
        "deleted_locally_kept_remotely"
    ]
    assert "pla-red" in remote.profiles
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.sync_state.synced_ids() == frozenset({"pla", "pla-red"})


def test_local_deletion_propagates_when_enabled(
    sqlite_unit_of_work: UnitOfWorkFactory,
) -> None:
    config = SyncConfig(propagate_deletes=True, backoff_base_seconds=0.0)
    local, remote = _local(), InMemoryBackend()
    _pass(local, remote, sqlite_unit_of_work, config)
    del local.profiles["pla-red"]

    outcome = _pass(local, remote, sqlite_unit_of_work, config)

    assert outcome.report is not None
    assert outcome.report.counts() == {OperationState.CONFIRMED: 1}
    assert sorted(remote.profiles) == ["pla"]
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.sync_state.synced_ids() == frozenset({"pla"})


def test_rejected_operations_are_journaled_but_not_synced(
    sqlite_unit_of_work: UnitOfWorkFactory, sync_config: SyncConfig
) -> None:
    local, remote = _local(), InMemoryBackend()
    remote.fail("pla", OperationRejected("density missing"))

    outcome = _pass(local, remote, sqlite_unit_of_work, sync_config)

    assert outcome.is_partial
    assert remote.profiles == {}
    with sqlite_unit_of_work() as uow:
        entries = uow.repositories.operation_log.for_pass(outcome.pass_id)
        assert [(entry.target_id, entry.state) for entry in entries] == [
            ("pla", "abandoned"),
            ("pla-red", "abandoned"),
        ]
        assert entries[0].error == "density missing"
        assert uow.repositories.sync_state.synced_ids() == frozenset()


def test_pass_is_refused_while_another_holds_the_store(
    sqlite_unit_of_work: UnitOfWorkFactory, sync_config: SyncConfig
) -> None:
    local, remote = _local(), InMemoryBackend()

    with sqlite_unit_of_work(), pytest.raises(PassInProgress):
        _pass(local, remote, sqlite_unit_of_work, sync_config)

    assert remote.calls == []


class _GatedBackend:
    """Delegates to ``inner`` but holds ``fetch_snapshot`` until ``gate`` opens."""

    def __init__(self, inner: InMemoryBackend) -> None:
        self.inner = inner
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def fetch_snapshot(self) -> list[Profile]:
        self.entered.set()
        await self.gate.wait()
        return await self.inner.fetch_snapshot()

    async def apply(self, operation: SyncOperation) -> ApplyOutcome:
        return await self.inner.apply(operation)


def test_second_pass_on_the_same_loop_is_refused_without_blocking(
    sqlite_unit_of_work: UnitOfWorkFactory, sync_config: SyncConfig
) -> None:
    local, remote = _local(), InMemoryBackend()

    async def scenario() -> PassOutcome:
        gated = _GatedBackend(local)
        first = asyncio.create_task(
            run_reconciliation_pass(
                local=gated,
                remote=remote,
                unit_of_work_factory=sqlite_unit_of_work,
                sync_config=sync_config,
            )
        )
        await gated.entered.wait()
        with pytest.raises(PassInProgress):
            await run_reconciliation_pass(
                local=local,
                remote=remote,
                unit_of_work_factory=sqlite_unit_of_work,
                sync_config=sync_config,
            )
        gated.gate.set()
        return await first

    outcome = asyncio.run(scenario())

    assert outcome.report is not None
    assert outcome.report.counts() == {OperationState.CONFIRMED: 2}


def test_tag_rules_are_managed_and_applied(
    sqlite_unit_of_work: UnitOfWorkFactory, sync_config: SyncConfig
) -> None:
    rule = add_tag_rule(
        tag=" hot ",
        property_name="nozzle_temperature",
        value="230",
        precedence=1,
        unit_of_work_factory=sqlite_unit_of_work,
    )
    assert rule == TagRule(tag="hot", property_name="nozzle_temperature", value=230, precedence=1)
    assert list_tag_rules(unit_of_work_factory=sqlite_unit_of_work) == [rule]

    local, remote = _local(tags=frozenset({"hot"})), InMemoryBackend()
    _pass(local, remote, sqlite_unit_of_work, sync_config)

    assert remote.profiles["pla"].properties["nozzle_temperature"].value == 230
    removed = remove_tag_rule(
        tag="hot", property_name="nozzle_temperature", unit_of_work_factory=sqlite_unit_of_work
    )
    assert removed == 1
    assert list_tag_rules(unit_of_work_factory=sqlite_unit_of_work) == []


def test_blank_tag_rules_are_rejected(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    with pytest.raises(ValueError, match="must not be blank"):
        add_tag_rule(
            tag=" ",
            property_name="nozzle_temperature",
            value=230,
            unit_of_work_factory=sqlite_unit_of_work,
        )


def test_default_unit_of_work_starts_the_adapter(
    monkeypatch: MonkeyPatch, sqlite_unit_of_work: UnitOfWorkFactory
) -> None:
    started: list[bool] = []
    monkeypatch.setattr("spoolsync.app.is_started", lambda: False)
    monkeypatch.setattr("spoolsync.app.startup", lambda: started.append(True))

    assert list_tag_rules() == []
    assert started == [True]


def test_service_survives_a_failed_pass(
    sqlite_unit_of_work: UnitOfWorkFactory, sync_config: SyncConfig
) -> None:
    local, remote = _local(), InMemoryBackend()
    local.unavailable = True
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)
        local.unavailable = False

    attempted = asyncio.run(
        run_service(
            local=local,
            remote=remote,
            unit_of_work_factory=sqlite_unit_of_work,
            sync_config=sync_config,
            poll_interval=5.0,
            max_passes=2,
            sleep=fake_sleep,
        )
    )

    assert attempted == 2
    assert delays == [5.0]
    assert sorted(remote.profiles) == ["pla", "pla-red"]


def test_service_starts_the_next_pass_on_a_preset_change(
    sqlite_unit_of_work: UnitOfWorkFactory, sync_config: SyncConfig
) -> None:
    local, remote = _local(), InMemoryBackend()
    waits: list[float] = []

    async def wait_for_change(timeout: float) -> bool:
        waits.append(timeout)
        return True

    async def unexpected_sleep(delay: float) -> None:
        raise AssertionError("the service should wait for changes, not sleep")

    attempted = asyncio.run(
        run_service(
            local=local,
            remote=remote,
            unit_of_work_factory=sqlite_unit_of_work,
            sync_config=sync_config,
            poll_interval=30.0,
            max_passes=3,
            sleep=unexpected_sleep,
            wait_for_change=wait_for_change,
        )
    )

    assert attempted == 3
    assert waits == [30.0, 30.0]
    assert sorted(remote.profiles) == ["pla", "pla-red"]


def test_last_pass_history_reads_the_journal(
    sqlite_unit_of_work: UnitOfWorkFactory, sync_config: SyncConfig
) -> None:
    assert last_pass_history(unit_of_work_factory=sqlite_unit_of_work) is None

    outcome = _pass(_local(), InMemoryBackend(), sqlite_unit_of_work, sync_config)
    history = last_pass_history(unit_of_work_factory=sqlite_unit_of_work)

    assert history is not None
    assert history.pass_id == outcome.pass_id
    assert [(entry.target_id, entry.state) for entry in history.entries] == [
        ("pla", "confirmed"),
        ("pla-red", "confirmed"),
    ]
    assert sorted(history.synced) == ["pla", "pla-red"]
    assert history.synced["pla"].remote_ref == "pla"
