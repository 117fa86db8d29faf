from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine

from spoolsync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from spoolsync.domain.model import TagRule
from spoolsync.domain.reconciliation import PassInProgress

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_sqlalchemy_unit_of_work_requires_startup() -> None:
    assert not is_started()
    with pytest.raises(StartupError):
        SqlAlchemyUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b
    assert is_started()


def test_startup_from_database_uri(tmp_path: Path) -> None:
    startup(database_uri=f"sqlite+pysqlite:///{tmp_path / 'journal.db'}")

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.tag_rules.list_rules() == []
    assert (tmp_path / "journal.db").exists()


def test_unit_of_work_persists_on_commit(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    synced_at = datetime(2024, 5, 1, tzinfo=UTC)

    with SqlAlchemyUnitOfWork() as uow:
        uow.repositories.tag_rules.add(
            TagRule(tag="hot", property_name="nozzle_temperature", value=230)
        )
        uow.repositories.sync_state.mark_synced("PLA Base", remote_ref="3", synced_at=synced_at)
        uow.commit()

    with SqlAlchemyUnitOfWork() as uow:
        assert [rule.tag for rule in uow.repositories.tag_rules.list_rules()] == ["hot"]
        assert uow.repositories.sync_state.synced_ids() == frozenset({"PLA Base"})


def test_unit_of_work_discards_uncommitted_work(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    rule = TagRule(tag="hot", property_name="nozzle_temperature", value=230)

    with SqlAlchemyUnitOfWork() as uow:
        uow.repositories.tag_rules.add(rule)
        uow.rollback()

    with pytest.raises(RuntimeError, match="boom"), SqlAlchemyUnitOfWork() as uow:
        uow.repositories.tag_rules.add(rule)
        raise RuntimeError("boom")

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.tag_rules.list_rules() == []


def test_repositories_are_only_available_inside_the_block(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = SqlAlchemyUnitOfWork()

    with pytest.raises(StartupError):
        _ = uow.repositories
    with pytest.raises(StartupError):
        uow.commit()


def test_only_one_pass_holds_the_store(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    with SqlAlchemyUnitOfWork():
        with pytest.raises(PassInProgress):
            SqlAlchemyUnitOfWork().__enter__()

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.operation_log.latest_pass_id() is None


def test_pass_lock_is_released_after_an_error(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    with pytest.raises(ValueError, match="failed pass"), SqlAlchemyUnitOfWork():
        raise ValueError("failed pass")

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.sync_state.synced_ids() == frozenset()
