"""Records the service keeps between reconciliation passes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class SyncedProfile:
    """A profile that existed on both sides after some earlier pass.

    The merge policy uses this history to tell a brand new profile from one
    that was deleted on the other side.
    """

    profile_id: str
    remote_ref: str | None = None
    synced_at: datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class OperationLogEntry:
    pass_id: str
    operation_key: str
    target_id: str
    side: str
    kind: str
    state: str
    attempts: int = 0
    error: str | None = None
    recorded_at: datetime
