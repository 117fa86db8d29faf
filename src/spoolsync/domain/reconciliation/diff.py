"""Diff engine: field-level comparison of two resolved snapshots.

The output is a flat, order-irrelevant list; downstream stages sort it as
they need. Properties the local side marks ``never_sync`` never appear in a
change record, and neither do properties whose resolution failed.
Field records carry the effective revision of each side's value rather than
the profile's own revision.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from spoolsync.domain.model import SyncMode

from .contracts import ChangeKind, ChangeRecord

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

    from spoolsync.domain.model import ResolvedProfile, ResolvedValue


def diff_profiles(
    local: Mapping[str, ResolvedProfile],
    remote: Mapping[str, ResolvedProfile],
    *,
    synced_ids: Collection[str] = frozenset(),
    include_unchanged: bool = False,
) -> list[ChangeRecord]:
    """Compare ``local`` against ``remote`` and return the differences."""

    changes: list[ChangeRecord] = []
    for profile_id in sorted(set(local) | set(remote)):
        local_profile = local.get(profile_id)
        remote_profile = remote.get(profile_id)
        previously_synced = profile_id in synced_ids

        if remote_profile is None and local_profile is not None:
            changes.append(
                ChangeRecord(
                    profile_id=profile_id,
                    property_name=None,
                    local_value=local_profile.syncable_values(),
                    kind=ChangeKind.ADDED,
                    local_revision=local_profile.revision,
                    options=local_profile.options,
                    previously_synced=previously_synced,
                )
            )
        elif local_profile is None and remote_profile is not None:
            changes.append(
                ChangeRecord(
                    profile_id=profile_id,
                    property_name=None,
                    remote_value=remote_profile.syncable_values(),
                    kind=ChangeKind.REMOVED,
                    remote_revision=remote_profile.revision,
                    previously_synced=previously_synced,
                )
            )
        elif local_profile is not None and remote_profile is not None:
            changes.extend(
                _diff_properties(
                    local_profile,
                    remote_profile,
                    previously_synced=previously_synced,
                    include_unchanged=include_unchanged,
                )
            )
    return changes


def _diff_properties(
    local: ResolvedProfile,
    remote: ResolvedProfile,
    *,
    previously_synced: bool,
    include_unchanged: bool,
) -> list[ChangeRecord]:
    changes: list[ChangeRecord] = []
    failed = set(local.errors) | set(remote.errors)
    for name in sorted(set(local.values) | set(remote.values)):
        if name in failed:
            continue
        local_value = local.values.get(name)
        remote_value = remote.values.get(name)
        if SyncMode.NEVER_SYNC in (_mode(local_value), _mode(remote_value)):
            continue

        # an explicit None counts as absent on both sides
        mine = local_value.value if local_value is not None else None
        theirs = remote_value.value if remote_value is not None else None
        if mine is None and theirs is None:
            continue
        if mine is None:
            kind = ChangeKind.REMOVED
        elif theirs is None:
            kind = ChangeKind.ADDED
        elif mine != theirs:
            kind = ChangeKind.MODIFIED
        else:
            kind = ChangeKind.UNCHANGED

        if kind is ChangeKind.UNCHANGED and not include_unchanged:
            continue

        changes.append(
            ChangeRecord(
                profile_id=local.profile_id,
                property_name=name,
                local_value=mine,
                remote_value=theirs,
                kind=kind,
                local_mode=_mode(local_value),
                local_origin=local_value.origin if local_value is not None else None,
                local_revision=local.revision_of(name),
                remote_revision=remote.revision_of(name),
                options=local.options,
                previously_synced=previously_synced,
            )
        )
    return changes


def _mode(value: ResolvedValue | None) -> SyncMode | None:
    return value.mode if value is not None else None
