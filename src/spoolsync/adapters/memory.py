"""In-memory profile backend for dry runs and tests."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING

from spoolsync.domain.model import Profile, ProfileOrigin, PropertyValue, SyncMode
from spoolsync.domain.ports import ApplyOutcome
from spoolsync.domain.reconciliation.errors import BackendUnavailable, OperationRejected
from spoolsync.domain.reconciliation.plan import OperationKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from spoolsync.domain.reconciliation.plan import SyncOperation

log = getLogger(__name__)


@dataclass(slots=True)
class InMemoryBackend:
    """``ProfileBackend`` holding profiles in a dict.

    ``fail_next`` queues exceptions raised by the next ``apply`` calls for a
    target id; ``unavailable`` makes every call raise ``BackendUnavailable``.
    ``applied_keys`` records successful operation keys so a replayed operation
    is a no-op.
    """

    origin: ProfileOrigin = ProfileOrigin.REMOTE
    profiles: dict[str, Profile] = field(default_factory=dict[str, Profile])
    applied_keys: list[str] = field(default_factory=list[str])
    calls: list[str] = field(default_factory=list[str])
    fail_next: dict[str, list[Exception]] = field(default_factory=dict[str, list[Exception]])
    unavailable: bool = False
    drop_writes: bool = False
    revision_clock: int = 0

    @classmethod
    def with_profiles(
        cls, profiles: Iterable[Profile], *, origin: ProfileOrigin = ProfileOrigin.REMOTE
    ) -> InMemoryBackend:
        return cls(origin=origin, profiles={profile.profile_id: profile for profile in profiles})

    def fail(self, target_id: str, *errors: Exception) -> None:
        self.fail_next.setdefault(target_id, []).extend(errors)

    async def fetch_snapshot(self) -> list[Profile]:
        if self.unavailable:
            raise BackendUnavailable("in-memory backend marked unavailable")
        return [self.profiles[profile_id] for profile_id in sorted(self.profiles)]

    async def apply(self, operation: SyncOperation) -> ApplyOutcome:
        self.calls.append(operation.describe())
        if self.unavailable:
            raise BackendUnavailable("in-memory backend marked unavailable")
        queued = self.fail_next.get(operation.target_id)
        if queued:
            raise queued.pop(0)
        if operation.key in self.applied_keys:
            return ApplyOutcome(remote_ref=operation.target_id, replayed=True)

        if not self.drop_writes:
            self._write(operation)
        self.applied_keys.append(operation.key)
        log.debug("In-memory %s applied %s", self.origin, operation.describe())
        return ApplyOutcome(remote_ref=operation.target_id)

    def _write(self, operation: SyncOperation) -> None:
        target = operation.target_id
        current = self.profiles.get(target)
        revision = operation.revision if operation.revision is not None else self.revision_clock

        if operation.kind is OperationKind.DELETE:
            self.profiles.pop(target, None)
            return
        if operation.kind is OperationKind.UPDATE and current is None:
            raise OperationRejected(f"No profile {target!r}", operation=operation)

        properties = dict(current.properties) if current is not None else {}
        for name, value in operation.payload.items():
            if value is None:
                properties.pop(name, None)
                continue
            mode = properties[name].sync_mode if name in properties else SyncMode.OVERRIDE
            properties[name] = PropertyValue(value, mode)

        if current is None:
            self.profiles[target] = Profile(
                profile_id=target,
                parent_id=operation.parent_id,
                properties=properties,
                revision=revision,
                origin=self.origin,
                remote_ref=target,
            )
        else:
            self.profiles[target] = replace(
                current,
                properties=properties,
                revision=max(current.revision, revision),
            )
