"""Port for the stores a reconciliation pass reads from and writes to."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from spoolsync.domain.model import Profile
    from spoolsync.domain.reconciliation.plan import SyncOperation


@dataclass(frozen=True, slots=True)
class ApplyOutcome:
    """Result of one successful ``apply`` call.

    ``replayed`` is set when the backend recognised the operation key and did
    nothing because the operation had already been applied.
    """

    remote_ref: str | None = None
    replayed: bool = False


@runtime_checkable
class ProfileBackend(Protocol):
    """Read/write access to one side of the sync.

    ``fetch_snapshot`` raises ``BackendUnavailable``; ``apply`` raises
    ``BackendUnavailable`` (retryable) or ``OperationRejected`` (final) and must
    be idempotent per ``operation.key``.
    """

    async def fetch_snapshot(self) -> Sequence[Profile]: ...

    async def apply(self, operation: SyncOperation) -> ApplyOutcome: ...
