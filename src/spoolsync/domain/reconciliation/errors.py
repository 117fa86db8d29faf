"""Error taxonomy of the reconciliation core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from spoolsync.domain.model import PropertyScalar

    from .execute import SyncReport
    from .plan import OperationState, SyncOperation


class ReconciliationError(RuntimeError):
    """Base class for reconciliation failures."""


class CycleDetected(ReconciliationError):
    """Raised when parent references form a cycle."""

    def __init__(self, profile_ids: Sequence[str]) -> None:
        self.profile_ids = tuple(sorted(profile_ids))
        super().__init__(f"Parent references form a cycle among: {', '.join(self.profile_ids)}")


class UnknownParentReference(ReconciliationError):
    """Raised when a profile names a parent that is not part of the store."""

    def __init__(self, profile_id: str, parent_id: str) -> None:
        self.profile_id = profile_id
        self.parent_id = parent_id
        super().__init__(f"Profile {profile_id!r} references unknown parent {parent_id!r}")


class DuplicateProfile(ReconciliationError):
    """Raised when two profiles share one id."""

    def __init__(self, profile_id: str) -> None:
        self.profile_id = profile_id
        super().__init__(f"Duplicate profile id {profile_id!r}")


class AmbiguousTagPrecedence(ReconciliationError):
    """Two rules with the same tag and precedence assign different values."""

    def __init__(
        self,
        *,
        profile_id: str,
        property_name: str,
        tag: str,
        precedence: int,
        values: Sequence[PropertyScalar],
    ) -> None:
        self.profile_id = profile_id
        self.property_name = property_name
        self.tag = tag
        self.precedence = precedence
        self.values = tuple(values)
        super().__init__(
            f"Tag {tag!r} assigns {len(self.values)} different values to "
            f"{property_name!r} at precedence {precedence} (profile {profile_id!r})"
        )


class BackendUnavailable(ReconciliationError):
    """Backend could not be reached; the call may be retried."""


class OperationRejected(ReconciliationError):
    """Backend refused an operation; retrying will not help."""

    def __init__(self, message: str, *, operation: SyncOperation | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class InvalidTransition(ReconciliationError):
    """Raised when an operation is moved along an edge its lifecycle does not allow."""

    def __init__(self, current: OperationState, requested: OperationState) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move operation from {current} to {requested}")


class PartialSyncFailure(ReconciliationError):
    """Some operations of a pass did not reach a confirmed state."""

    def __init__(self, report: SyncReport) -> None:
        self.report = report
        counts = ", ".join(f"{state}={count}" for state, count in report.counts().items())
        super().__init__(f"Sync pass finished partially: {counts}")


class PassInProgress(ReconciliationError):
    """Another reconciliation pass currently holds the store."""
