"""Ports for the state the service persists between passes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from spoolsync.domain.model import OperationLogEntry, TagRule

if TYPE_CHECKING:
    from datetime import datetime

    from spoolsync.domain.model import SyncedProfile


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class TagRuleRepository(Repository[TagRule], Protocol):
    """Tag rules; an identical rule is stored once."""

    def list_rules(self) -> list[TagRule]: ...

    def remove(self, *, tag: str, property_name: str) -> int: ...


@runtime_checkable
class SyncStateRepository(Protocol):
    """Which profiles were present on both sides after an earlier pass."""

    def get(self, profile_id: str) -> SyncedProfile | None: ...

    def synced_ids(self) -> frozenset[str]: ...

    def mark_synced(
        self, profile_id: str, *, remote_ref: str | None, synced_at: datetime
    ) -> None: ...

    def forget(self, profile_id: str) -> None: ...


@runtime_checkable
class OperationLogRepository(Repository[OperationLogEntry], Protocol):
    """Append-only journal of operation outcomes per pass."""

    def for_pass(self, pass_id: str) -> list[OperationLogEntry]: ...

    def latest_pass_id(self) -> str | None: ...
