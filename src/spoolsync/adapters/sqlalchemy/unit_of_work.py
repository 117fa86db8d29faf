"""SQLAlchemy unit of work around the sync journal."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from spoolsync.adapters.sqlalchemy.migrations import upgrade_head
from spoolsync.adapters.sqlalchemy.repositories import (
    SqlAlchemyOperationLogRepository,
    SqlAlchemySyncStateRepository,
    SqlAlchemyTagRuleRepository,
)
from spoolsync.config import get_database_config
from spoolsync.domain.ports.unit_of_work import ReconciliationRepositories
from spoolsync.domain.reconciliation.errors import PassInProgress

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when the journal is used before ``startup`` or outside a ``with`` block."""


@dataclass(slots=True)
class _AdapterState:
    engine: Engine | None = None
    session_factory: sessionmaker[Session] | None = None
    # one pass per process; separate processes sharing a journal are not coordinated
    pass_lock: threading.Lock = field(default_factory=threading.Lock)

    def sessions(self) -> sessionmaker[Session]:
        if self.session_factory is None:
            raise StartupError(
                "Sync journal not initialised. Call spoolsync.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        return self.session_factory


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Open the journal database, migrate it to the latest revision and bind sessions to it."""

    if _STATE.engine is not None and not force:
        raise StartupError("Sync journal already initialised. Pass force=True to reconfigure.")

    resolved_engine = engine or create_engine(
        database_uri or get_database_config().uri, future=True
    )
    upgrade_head(engine=resolved_engine)
    _STATE.engine = resolved_engine
    _STATE.session_factory = sessionmaker(bind=resolved_engine, expire_on_commit=False)
    log.debug(
        "Sync journal started on %s", resolved_engine.url.render_as_string(hide_password=True)
    )


def configured_engine() -> Engine | None:
    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the journal engine; the next use needs ``startup`` again."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None
    _STATE.session_factory = None


class SqlAlchemyUnitOfWork:
    """Journal transaction for one reconciliation pass.

    Entering takes the process-wide pass lock without waiting and raises
    ``PassInProgress`` when another pass holds it, including one suspended
    on the same event loop.
    Leaving without ``commit`` discards every journal write of the block.
    """

    def __init__(self) -> None:
        self.session_factory = _STATE.sessions()
        self.session: Session | None = None
        self._repositories: ReconciliationRepositories | None = None
        self._locked = False

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        if not _STATE.pass_lock.acquire(blocking=False):
            raise PassInProgress("Another reconciliation pass is running")
        self._locked = True

        try:
            self.session = self.session_factory()
        except BaseException:
            self._release()
            raise
        self._repositories = ReconciliationRepositories(
            tag_rules=SqlAlchemyTagRuleRepository(self.session),
            sync_state=SqlAlchemySyncStateRepository(self.session),
            operation_log=SqlAlchemyOperationLogRepository(self.session),
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        try:
            if self.session is not None:
                # uncommitted writes are dropped on close, with or without an error
                self.session.rollback()
                self.session.close()
        finally:
            self.session = None
            self._repositories = None
            self._release()
        return False

    @property
    def repositories(self) -> ReconciliationRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work used outside of its 'with' block")
        return self._repositories

    def commit(self) -> None:
        if self.session is None:
            raise StartupError("Unit of work used outside of its 'with' block")
        self.session.commit()

    def rollback(self) -> None:
        if self.session is not None:
            self.session.rollback()

    def _release(self) -> None:
        if self._locked:
            self._locked = False
            _STATE.pass_lock.release()
