"""Records passed between the diff, policy and planning stages.

This module intentionally holds only:
- change records produced by the diff engine
- decision/conflict records produced by the merge policy
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from spoolsync.domain.model import ProfileOptions

if TYPE_CHECKING:
    from spoolsync.domain.model import PropertyScalar, SyncMode, ValueOrigin


class ChangeKind(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


type ChangeValue = PropertyScalar | Mapping[str, PropertyScalar]


@dataclass(frozen=True, slots=True, kw_only=True)
class ChangeRecord:
    """Field-level (or, with ``property_name=None``, profile-level) difference.

    ``added`` means present locally only; ``removed`` means present remotely only.
    For profile-level records the values are the syncable resolved value maps.
    """

    profile_id: str
    property_name: str | None
    local_value: ChangeValue = None
    remote_value: ChangeValue = None
    kind: ChangeKind
    local_mode: SyncMode | None = None
    local_origin: ValueOrigin | None = None
    local_revision: int | None = None
    remote_revision: int | None = None
    options: ProfileOptions = field(default_factory=ProfileOptions)
    previously_synced: bool = False

    @property
    def is_profile_level(self) -> bool:
        return self.property_name is None

    def sort_key(self) -> tuple[str, str]:
        return (self.profile_id, self.property_name or "")


class Direction(StrEnum):
    PUSH_LOCAL_TO_REMOTE = "push_local_to_remote"
    PULL_REMOTE_TO_LOCAL = "pull_remote_to_local"
    SKIP = "skip"


@dataclass(frozen=True, slots=True, kw_only=True)
class Decision:
    """Merge policy verdict for one change.

    ``target_id`` differs from the change's profile when a value propagates
    upward to the ancestor that supplies it.
    """

    change: ChangeRecord
    direction: Direction
    target_id: str
    reason: str


@dataclass(frozen=True, slots=True, kw_only=True)
class Conflict:
    """Both sides disagree and neither is authoritative; surfaced, never auto-resolved."""

    change: ChangeRecord
    reason: str


type Verdict = Decision | Conflict
