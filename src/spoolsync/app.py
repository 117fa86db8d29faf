"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING
from uuid import uuid4

from spoolsync.adapters.orcaslicer import OrcaSlicerStore, PresetWatcher
from spoolsync.adapters.spoolman import SpoolmanBackend
from spoolsync.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from spoolsync.config import get_orcaslicer_config, get_spoolman_config, get_sync_config
from spoolsync.domain.model import OperationLogEntry, TagRule, normalize_value
from spoolsync.domain.ports.unit_of_work import ReconciliationUnitOfWork
from spoolsync.domain.reconciliation import (
    ExecutionSettings,
    MergePolicy,
    OperationKind,
    OperationState,
    PassInProgress,
    PlanExecutor,
    ReconciliationEngine,
    SyncSide,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Sequence

    import httpx

    from spoolsync.config import SyncConfig
    from spoolsync.domain.model import Profile, PropertyScalar, SyncedProfile
    from spoolsync.domain.ports import ProfileBackend, ReconciliationRepositories
    from spoolsync.domain.reconciliation import ReconciliationResult, SyncReport
    from spoolsync.domain.reconciliation.execute import Sleep

    type WaitForChange = Callable[[float], Awaitable[bool]]

UnitOfWorkFactory = Callable[[], ReconciliationUnitOfWork]

log = getLogger(__name__)

_LANDED = frozenset({OperationState.APPLIED, OperationState.CONFIRMED})


@dataclass(slots=True)
class PassOutcome:
    """Result of one reconciliation pass; ``report`` is ``None`` for dry runs."""

    pass_id: str
    result: ReconciliationResult
    report: SyncReport | None = None

    @property
    def dry_run(self) -> bool:
        return self.report is None

    @property
    def is_partial(self) -> bool:
        return self.report is not None and self.report.is_partial


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _default_unit_of_work_factory() -> UnitOfWorkFactory:
    if not is_started():
        startup()
    return SqlAlchemyUnitOfWork


async def run_reconciliation_pass(
    *,
    local: ProfileBackend,
    remote: ProfileBackend,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    sync_config: SyncConfig | None = None,
    dry_run: bool = False,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], datetime] = _utcnow,
) -> PassOutcome:
    """Run one pass: fetch both sides, reconcile and (unless ``dry_run``) execute.

    The unit of work holds the pass lock for the whole pass, so
    ``PassInProgress`` is raised before anything is fetched when another pass
    is running. The journal is only committed for executed passes.
    """

    config = sync_config or get_sync_config()
    effective_uow = unit_of_work_factory or _default_unit_of_work_factory()
    pass_id = uuid4().hex

    with effective_uow() as uow:
        repositories = uow.repositories
        tag_rules = repositories.tag_rules.list_rules()
        synced_ids = repositories.sync_state.synced_ids()

        local_profiles, remote_profiles = await asyncio.gather(
            local.fetch_snapshot(), remote.fetch_snapshot()
        )
        log.info(
            "Starting pass %s: local=%s, remote=%s, tag_rules=%s, dry_run=%s",
            pass_id,
            len(local_profiles),
            len(remote_profiles),
            len(tag_rules),
            dry_run,
        )

        engine = ReconciliationEngine(
            policy=MergePolicy(
                propagate_deletes=config.propagate_deletes,
                adopt_remote=config.adopt_remote,
            ),
            inheritance_precedence=config.inheritance_precedence,
        )
        result = engine.reconcile(
            local_profiles, remote_profiles, tag_rules, synced_ids=synced_ids
        )
        for error in result.resolution_errors:
            log.warning("%s", error)
        if dry_run:
            return PassOutcome(pass_id=pass_id, result=result)

        executor = PlanExecutor(
            {SyncSide.LOCAL: local, SyncSide.REMOTE: remote},
            ExecutionSettings(
                max_attempts=config.max_attempts,
                backoff_base_seconds=config.backoff_base_seconds,
                backoff_max_seconds=config.backoff_max_seconds,
                max_parallel_chains=config.max_parallel_chains,
            ),
            sleep=sleep,
        )
        report = await executor.execute(result.plan)

        _record_pass(
            repositories,
            pass_id=pass_id,
            report=report,
            local_profiles=local_profiles,
            remote_profiles=remote_profiles,
            synced_ids=synced_ids,
            now=clock(),
        )
        uow.commit()

    log.info(
        "Finished pass %s: %s",
        pass_id,
        ", ".join(f"{state}={count}" for state, count in report.counts().items()) or "no-op",
    )
    return PassOutcome(pass_id=pass_id, result=result, report=report)


def _record_pass(
    repositories: ReconciliationRepositories,
    *,
    pass_id: str,
    report: SyncReport,
    local_profiles: Sequence[Profile],
    remote_profiles: Sequence[Profile],
    synced_ids: frozenset[str],
    now: datetime,
) -> None:
    present = {
        SyncSide.LOCAL: {profile.profile_id for profile in local_profiles},
        SyncSide.REMOTE: {profile.profile_id for profile in remote_profiles},
    }
    remote_refs = {profile.profile_id: profile.remote_ref for profile in remote_profiles}

    for operation in report.operations:
        repositories.operation_log.add(
            OperationLogEntry(
                pass_id=pass_id,
                operation_key=operation.key,
                target_id=operation.target_id,
                side=str(operation.side),
                kind=str(operation.kind),
                state=str(operation.state),
                attempts=operation.attempts,
                error=operation.error,
                recorded_at=now,
            )
        )
        if operation.state not in _LANDED:
            continue
        if operation.kind is OperationKind.CREATE:
            present[operation.side].add(operation.target_id)
        elif operation.kind is OperationKind.DELETE:
            present[operation.side].discard(operation.target_id)
        if operation.side is SyncSide.REMOTE and operation.remote_ref is not None:
            remote_refs[operation.target_id] = operation.remote_ref

    on_both = present[SyncSide.LOCAL] & present[SyncSide.REMOTE]
    for profile_id in sorted(on_both):
        repositories.sync_state.mark_synced(
            profile_id, remote_ref=remote_refs.get(profile_id), synced_at=now
        )
    # a profile still on one side keeps its history so the policy sees the deletion
    anywhere = present[SyncSide.LOCAL] | present[SyncSide.REMOTE]
    for profile_id in sorted(synced_ids - anywhere):
        repositories.sync_state.forget(profile_id)


async def run_service(
    *,
    local: ProfileBackend,
    remote: ProfileBackend,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    sync_config: SyncConfig | None = None,
    poll_interval: float | None = None,
    max_passes: int | None = None,
    sleep: Sleep = asyncio.sleep,
    wait_for_change: WaitForChange | None = None,
) -> int:
    """Run passes every ``poll_interval`` seconds; return the number of passes attempted.

    With ``wait_for_change`` the next pass starts as soon as it reports a
    change, and ``poll_interval`` only bounds the wait. A failed pass is logged
    and the loop carries on with the next one. ``max_passes`` bounds the loop
    (``None`` runs until cancelled).
    """

    config = sync_config or get_sync_config()
    interval = poll_interval if poll_interval is not None else config.poll_interval_seconds
    attempted = 0
    log.info("Starting sync service: interval=%ss", interval)

    while max_passes is None or attempted < max_passes:
        attempted += 1
        try:
            outcome = await run_reconciliation_pass(
                local=local,
                remote=remote,
                unit_of_work_factory=unit_of_work_factory,
                sync_config=config,
                sleep=sleep,
            )
        except PassInProgress:
            log.warning("Skipping pass: another pass is still running")
        except Exception:
            log.exception("Reconciliation pass failed")
        else:
            if outcome.is_partial:
                log.warning("Pass %s finished partially", outcome.pass_id)

        if max_passes is not None and attempted >= max_passes:
            break
        if wait_for_change is None:
            await sleep(interval)
        elif await wait_for_change(interval):
            log.info("Preset change detected, starting the next pass")
    return attempted


async def sync_with_spoolman(
    *,
    dry_run: bool = False,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    sync_config: SyncConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PassOutcome:
    """Run one pass between the configured OrcaSlicer directory and Spoolman."""

    config = sync_config or get_sync_config()
    local = OrcaSlicerStore(get_orcaslicer_config(), never_sync=config.never_sync_properties)
    # stamping Spoolman edits is a write; a dry run stays read-only
    async with SpoolmanBackend(
        get_spoolman_config(), transport=transport, acknowledge_edits=not dry_run
    ) as remote:
        return await run_reconciliation_pass(
            local=local,
            remote=remote,
            unit_of_work_factory=unit_of_work_factory,
            sync_config=config,
            dry_run=dry_run,
        )


async def watch_spoolman(
    *,
    poll_interval: float | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    sync_config: SyncConfig | None = None,
    max_passes: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Keep the configured OrcaSlicer directory and Spoolman in sync.

    Preset file changes start a pass right away unless ``SPOOLSYNC_WATCH_FILES``
    is off; the poll interval still catches Spoolman-side edits.
    """

    config = sync_config or get_sync_config()
    local = OrcaSlicerStore(get_orcaslicer_config(), never_sync=config.never_sync_properties)
    async with contextlib.AsyncExitStack() as stack:
        remote = await stack.enter_async_context(
            SpoolmanBackend(get_spoolman_config(), transport=transport)
        )
        wait_for_change: WaitForChange | None = None
        if config.watch_files and local.directory.is_dir():
            watcher = await stack.enter_async_context(PresetWatcher(local.directory))
            wait_for_change = watcher.wait
        return await run_service(
            local=local,
            remote=remote,
            unit_of_work_factory=unit_of_work_factory,
            sync_config=config,
            poll_interval=poll_interval,
            max_passes=max_passes,
            wait_for_change=wait_for_change,
        )


def add_tag_rule(
    *,
    tag: str,
    property_name: str,
    value: PropertyScalar,
    precedence: int = 0,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> TagRule:
    """Store a tag rule; the value is normalized like a profile property."""

    if not tag.strip() or not property_name.strip():
        raise ValueError("Tag and property name must not be blank")
    rule = TagRule(
        tag=tag.strip(),
        property_name=property_name.strip(),
        value=normalize_value(property_name.strip(), value),
        precedence=precedence,
    )
    effective_uow = unit_of_work_factory or _default_unit_of_work_factory()
    with effective_uow() as uow:
        uow.repositories.tag_rules.add(rule)
        uow.commit()
    log.info(
        "Added tag rule %s: %s=%r (precedence %s)",
        rule.tag,
        rule.property_name,
        rule.value,
        rule.precedence,
    )
    return rule


def remove_tag_rule(
    *,
    tag: str,
    property_name: str,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> int:
    """Remove every rule for ``tag`` and ``property_name``; return how many were removed."""

    effective_uow = unit_of_work_factory or _default_unit_of_work_factory()
    with effective_uow() as uow:
        removed = uow.repositories.tag_rules.remove(tag=tag, property_name=property_name)
        uow.commit()
    log.info("Removed %s tag rule(s) for %s/%s", removed, tag, property_name)
    return removed


def list_tag_rules(*, unit_of_work_factory: UnitOfWorkFactory | None = None) -> list[TagRule]:
    effective_uow = unit_of_work_factory or _default_unit_of_work_factory()
    with effective_uow() as uow:
        return uow.repositories.tag_rules.list_rules()


@dataclass(frozen=True, slots=True)
class PassHistory:
    """Journaled operations of one executed pass and the sync state of their targets."""

    pass_id: str
    entries: list[OperationLogEntry]
    synced: dict[str, SyncedProfile]


def last_pass_history(
    *, unit_of_work_factory: UnitOfWorkFactory | None = None
) -> PassHistory | None:
    """Return the journal of the most recent executed pass, or ``None`` before the first."""

    effective_uow = unit_of_work_factory or _default_unit_of_work_factory()
    with effective_uow() as uow:
        repositories = uow.repositories
        pass_id = repositories.operation_log.latest_pass_id()
        if pass_id is None:
            return None
        entries = repositories.operation_log.for_pass(pass_id)
        synced: dict[str, SyncedProfile] = {}
        for target_id in sorted({entry.target_id for entry in entries}):
            state = repositories.sync_state.get(target_id)
            if state is not None:
                synced[target_id] = state
    return PassHistory(pass_id=pass_id, entries=entries, synced=synced)
