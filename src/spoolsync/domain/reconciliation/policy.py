"""Merge policy: which side is authoritative for each change.

Field rules, first match wins:
1) ``never_sync`` fields are skipped
2) a profile-level force option dictates the direction
3) a local ``override`` that differs from the remote value is pushed
4) with upward propagation enabled, a newer remote value for an inherited
   (not overridden) field is pulled into the ancestor that supplies it, so
   every descendant picks it up
5) otherwise the newer effective revision wins; equal revisions are a ``Conflict``

Profile-level records (whole profile present on one side only) use the
``synced`` history to tell a new profile apart from one deleted on the other
side.

The policy is deterministic given the change record alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from spoolsync.domain.model import ForceDirection, OriginKind, SyncMode

from .contracts import ChangeKind, Conflict, Decision, Direction

if TYPE_CHECKING:
    from .contracts import ChangeRecord, Verdict


class DecideChange(Protocol):
    """Turn one change record into a direction or a conflict."""

    def decide(self, change: ChangeRecord) -> Verdict: ...


@dataclass(frozen=True, slots=True, kw_only=True)
class MergePolicy:
    """Default merge policy.

    ``propagate_deletes`` turns a profile that vanished from one side after an
    earlier sync into a delete on the other side; otherwise such profiles are
    skipped. ``adopt_remote`` pulls profiles that only exist remotely.
    """

    propagate_deletes: bool = False
    adopt_remote: bool = True

    def decide(self, change: ChangeRecord) -> Verdict:
        if change.is_profile_level:
            return self._decide_profile(change)
        return self._decide_field(change)

    def decide_all(self, changes: list[ChangeRecord]) -> list[Verdict]:
        return [self.decide(change) for change in sorted(changes, key=lambda c: c.sort_key())]

    def _decide_profile(self, change: ChangeRecord) -> Verdict:
        if change.kind is ChangeKind.ADDED:
            if not change.previously_synced:
                return _decision(change, Direction.PUSH_LOCAL_TO_REMOTE, "new_local_profile")
            if self.propagate_deletes:
                return _decision(change, Direction.PULL_REMOTE_TO_LOCAL, "deleted_remotely")
            return _decision(change, Direction.SKIP, "deleted_remotely_kept_locally")

        if change.previously_synced:
            if self.propagate_deletes:
                return _decision(change, Direction.PUSH_LOCAL_TO_REMOTE, "deleted_locally")
            return _decision(change, Direction.SKIP, "deleted_locally_kept_remotely")
        if self.adopt_remote:
            return _decision(change, Direction.PULL_REMOTE_TO_LOCAL, "new_remote_profile")
        return _decision(change, Direction.SKIP, "remote_adoption_disabled")

    def _decide_field(self, change: ChangeRecord) -> Verdict:
        if change.local_mode is SyncMode.NEVER_SYNC:
            return _decision(change, Direction.SKIP, "never_sync")

        force = change.options.force_direction
        if force is ForceDirection.PUSH:
            return _decision(change, Direction.PUSH_LOCAL_TO_REMOTE, "forced_push")
        if force is ForceDirection.PULL:
            return _decision(change, Direction.PULL_REMOTE_TO_LOCAL, "forced_pull")

        if change.local_mode is SyncMode.OVERRIDE and change.local_value != change.remote_value:
            return _decision(change, Direction.PUSH_LOCAL_TO_REMOTE, "local_override")

        # upward propagation only rewrites the local ancestor default; a push
        # still targets the profile itself since remote records are flat
        upward_target: str | None = None
        origin = change.local_origin
        if (
            change.options.allow_upward_propagation
            and change.local_mode is SyncMode.INHERIT
            and origin is not None
            and origin.kind is OriginKind.INHERITED
            and origin.source is not None
        ):
            upward_target = origin.source

        local_revision = change.local_revision or 0
        remote_revision = change.remote_revision or 0
        if local_revision > remote_revision:
            return _decision(change, Direction.PUSH_LOCAL_TO_REMOTE, "local_newer")
        if remote_revision > local_revision:
            if upward_target is not None:
                return _decision(
                    change, Direction.PULL_REMOTE_TO_LOCAL, "remote_newer_upward", upward_target
                )
            return _decision(change, Direction.PULL_REMOTE_TO_LOCAL, "remote_newer")
        return Conflict(change=change, reason="equal_revisions")


def _decision(
    change: ChangeRecord,
    direction: Direction,
    reason: str,
    target_id: str | None = None,
) -> Decision:
    return Decision(
        change=change,
        direction=direction,
        target_id=target_id or change.profile_id,
        reason=reason,
    )
