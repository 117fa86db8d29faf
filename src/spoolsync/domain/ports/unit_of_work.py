"""Unit-of-work boundary of one reconciliation pass."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from spoolsync.domain.ports.persistence import (
        OperationLogRepository,
        SyncStateRepository,
        TagRuleRepository,
    )


@dataclass(slots=True)
class ReconciliationRepositories:
    """Repositories one reconciliation pass reads and writes."""

    tag_rules: TagRuleRepository
    sync_state: SyncStateRepository
    operation_log: OperationLogRepository


@runtime_checkable
class ReconciliationUnitOfWork(Protocol):
    """Journal transaction that also holds the exclusive pass lock.

    The lock is held from ``__enter__`` to ``__exit__``; entering while another
    pass holds it raises ``PassInProgress``. Nothing is written unless
    ``commit`` is called.
    """

    @property
    def repositories(self) -> ReconciliationRepositories: ...

    def __enter__(self) -> ReconciliationUnitOfWork: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...
