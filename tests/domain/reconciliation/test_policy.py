from __future__ import annotations

import pytest

from spoolsync.domain.model import ForceDirection, ProfileOptions, SyncMode, ValueOrigin
from spoolsync.domain.reconciliation import (
    ChangeKind,
    ChangeRecord,
    Conflict,
    Decision,
    Direction,
    MergePolicy,
)


def _field(
    *,
    local: object = 215,
    remote: object = 210,
    mode: SyncMode = SyncMode.INHERIT,
    origin: ValueOrigin | None = None,
    local_revision: int = 100,
    remote_revision: int = 100,
    options: ProfileOptions | None = None,
) -> ChangeRecord:
    return ChangeRecord(
        profile_id="pla-red",
        property_name="nozzle_temperature",
        local_value=local,  # type: ignore[arg-type]
        remote_value=remote,  # type: ignore[arg-type]
        kind=ChangeKind.MODIFIED,
        local_mode=mode,
        local_origin=origin or ValueOrigin.default(),
        local_revision=local_revision,
        remote_revision=remote_revision,
        options=options or ProfileOptions(),
    )


def _decision(change: ChangeRecord, policy: MergePolicy | None = None) -> Decision:
    verdict = (policy or MergePolicy()).decide(change)
    assert isinstance(verdict, Decision)
    return verdict


def test_never_sync_is_skipped_even_when_forced() -> None:
    change = _field(
        mode=SyncMode.NEVER_SYNC,
        options=ProfileOptions(force_direction=ForceDirection.PUSH),
    )

    decision = _decision(change)

    assert decision.direction is Direction.SKIP
    assert decision.reason == "never_sync"


@pytest.mark.parametrize(
    ("force", "direction"),
    [
        (ForceDirection.PUSH, Direction.PUSH_LOCAL_TO_REMOTE),
        (ForceDirection.PULL, Direction.PULL_REMOTE_TO_LOCAL),
    ],
)
def test_force_option_dictates_direction(force: ForceDirection, direction: Direction) -> None:
    change = _field(
        mode=SyncMode.OVERRIDE,
        local_revision=1,
        remote_revision=999,
        options=ProfileOptions(force_direction=force),
    )

    assert _decision(change).direction is direction


def test_local_override_is_pushed_regardless_of_revisions() -> None:
    change = _field(mode=SyncMode.OVERRIDE, local_revision=1, remote_revision=999)

    decision = _decision(change)

    assert decision.direction is Direction.PUSH_LOCAL_TO_REMOTE
    assert decision.reason == "local_override"


def test_newer_revision_wins() -> None:
    assert _decision(_field(local_revision=200)).direction is Direction.PUSH_LOCAL_TO_REMOTE
    assert _decision(_field(remote_revision=200)).direction is Direction.PULL_REMOTE_TO_LOCAL


def test_equal_revisions_are_a_conflict() -> None:
    verdict = MergePolicy().decide(_field())

    assert isinstance(verdict, Conflict)
    assert verdict.reason == "equal_revisions"


def test_upward_propagation_targets_the_supplying_ancestor() -> None:
    change = _field(
        origin=ValueOrigin.inherited("pla"),
        remote_revision=200,
        options=ProfileOptions(allow_upward_propagation=True),
    )

    decision = _decision(change)

    assert decision.direction is Direction.PULL_REMOTE_TO_LOCAL
    assert decision.target_id == "pla"
    assert decision.reason == "remote_newer_upward"


def test_upward_propagation_needs_the_option() -> None:
    change = _field(origin=ValueOrigin.inherited("pla"), remote_revision=200)

    assert _decision(change).target_id == "pla-red"


def test_upward_propagation_never_redirects_a_push() -> None:
    change = _field(
        origin=ValueOrigin.inherited("pla"),
        local_revision=200,
        options=ProfileOptions(allow_upward_propagation=True),
    )

    decision = _decision(change)

    assert decision.direction is Direction.PUSH_LOCAL_TO_REMOTE
    assert decision.target_id == "pla-red"


def _profile_change(kind: ChangeKind, *, previously_synced: bool) -> ChangeRecord:
    return ChangeRecord(
        profile_id="pla",
        property_name=None,
        local_value={"filament_type": "PLA"} if kind is ChangeKind.ADDED else None,
        remote_value={"filament_type": "PLA"} if kind is ChangeKind.REMOVED else None,
        kind=kind,
        previously_synced=previously_synced,
    )


@pytest.mark.parametrize(
    ("kind", "previously_synced", "policy", "direction", "reason"),
    [
        (
            ChangeKind.ADDED,
            False,
            MergePolicy(),
            Direction.PUSH_LOCAL_TO_REMOTE,
            "new_local_profile",
        ),
        (
            ChangeKind.ADDED,
            True,
            MergePolicy(),
            Direction.SKIP,
            "deleted_remotely_kept_locally",
        ),
        (
            ChangeKind.ADDED,
            True,
            MergePolicy(propagate_deletes=True),
            Direction.PULL_REMOTE_TO_LOCAL,
            "deleted_remotely",
        ),
        (
            ChangeKind.REMOVED,
            False,
            MergePolicy(),
            Direction.PULL_REMOTE_TO_LOCAL,
            "new_remote_profile",
        ),
        (
            ChangeKind.REMOVED,
            False,
            MergePolicy(adopt_remote=False),
            Direction.SKIP,
            "remote_adoption_disabled",
        ),
        (
            ChangeKind.REMOVED,
            True,
            MergePolicy(),
            Direction.SKIP,
            "deleted_locally_kept_remotely",
        ),
        (
            ChangeKind.REMOVED,
            True,
            MergePolicy(propagate_deletes=True),
            Direction.PUSH_LOCAL_TO_REMOTE,
            "deleted_locally",
        ),
    ],
)
def test_profile_level_decisions(
    kind: ChangeKind,
    previously_synced: bool,  # noqa: FBT001
    policy: MergePolicy,
    direction: Direction,
    reason: str,
) -> None:
    decision = _decision(_profile_change(kind, previously_synced=previously_synced), policy)

    assert decision.direction is direction
    assert decision.reason == reason


def test_decide_all_is_sorted_and_deterministic() -> None:
    changes = [
        _field(remote_revision=200),
        _profile_change(ChangeKind.ADDED, previously_synced=False),
    ]

    first = MergePolicy().decide_all(changes)
    second = MergePolicy().decide_all(list(reversed(changes)))

    assert first == second
    assert [verdict.change.profile_id for verdict in first] == ["pla", "pla-red"]
