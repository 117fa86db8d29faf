"""Tests for SQLAlchemy repositories."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session  # noqa: TC002

from spoolsync.adapters.sqlalchemy.repositories import (
    SqlAlchemyOperationLogRepository,
    SqlAlchemySyncStateRepository,
    SqlAlchemyTagRuleRepository,
)
from spoolsync.domain.model import OperationLogEntry, TagRule


def _entry(pass_id: str, target_id: str, *, recorded_at: datetime) -> OperationLogEntry:
    return OperationLogEntry(
        pass_id=pass_id,
        operation_key=f"key-{target_id}",
        target_id=target_id,
        side="remote",
        kind="create",
        state="confirmed",
        attempts=1,
        recorded_at=recorded_at,
    )


def test_tag_rule_repository_stores_each_rule_once(sqlite_session: Session) -> None:
    repository = SqlAlchemyTagRuleRepository(sqlite_session)
    hot = TagRule(tag="hot", property_name="nozzle_temperature", value=230, precedence=1)

    repository.add(hot)
    repository.add(hot)
    repository.add(TagRule(tag="hot", property_name="nozzle_temperature", value=240, precedence=5))
    repository.add(TagRule(tag="basic", property_name="filament_type", value="PLA"))
    repository.add(TagRule(tag="basic", property_name="filament_soluble", value=False))
    sqlite_session.commit()

    assert repository.list_rules() == [
        TagRule(tag="basic", property_name="filament_soluble", value=False),
        TagRule(tag="basic", property_name="filament_type", value="PLA"),
        TagRule(tag="hot", property_name="nozzle_temperature", value=240, precedence=5),
        hot,
    ]


def test_tag_rule_repository_keeps_ambiguous_rules(sqlite_session: Session) -> None:
    repository = SqlAlchemyTagRuleRepository(sqlite_session)

    repository.add(TagRule(tag="hot", property_name="nozzle_temperature", value=230))
    repository.add(TagRule(tag="hot", property_name="nozzle_temperature", value=240))
    sqlite_session.commit()

    assert [rule.value for rule in repository.list_rules()] == [230, 240]


def test_tag_rule_repository_removes_by_tag_and_property(sqlite_session: Session) -> None:
    repository = SqlAlchemyTagRuleRepository(sqlite_session)
    repository.add(TagRule(tag="hot", property_name="nozzle_temperature", value=230))
    repository.add(TagRule(tag="hot", property_name="nozzle_temperature", value=240, precedence=2))
    repository.add(TagRule(tag="hot", property_name="hot_plate_temp", value=65))
    sqlite_session.commit()

    removed = repository.remove(tag="hot", property_name="nozzle_temperature")
    sqlite_session.commit()

    assert removed == 2
    assert repository.list_rules() == [
        TagRule(tag="hot", property_name="hot_plate_temp", value=65)
    ]
    assert repository.remove(tag="hot", property_name="nozzle_temperature") == 0


def test_sync_state_repository_tracks_synced_profiles(sqlite_session: Session) -> None:
    repository = SqlAlchemySyncStateRepository(sqlite_session)
    first_sync = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    repository.mark_synced("PLA Base", remote_ref="7", synced_at=first_sync)
    repository.mark_synced("PLA Red", remote_ref=None, synced_at=first_sync)
    repository.mark_synced("PLA Base", remote_ref=None, synced_at=first_sync + timedelta(hours=1))
    sqlite_session.commit()

    assert repository.synced_ids() == frozenset({"PLA Base", "PLA Red"})
    base = repository.get("PLA Base")
    assert base is not None
    assert base.remote_ref == "7"
    assert base.synced_at == first_sync + timedelta(hours=1)
    assert repository.get("Unknown") is None

    repository.forget("PLA Red")
    sqlite_session.commit()

    assert repository.synced_ids() == frozenset({"PLA Base"})


def test_operation_log_repository_groups_entries_by_pass(sqlite_session: Session) -> None:
    repository = SqlAlchemyOperationLogRepository(sqlite_session)
    recorded_at = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    assert repository.latest_pass_id() is None
    repository.add(_entry("first", "PLA Base", recorded_at=recorded_at))
    repository.add(_entry("second", "PLA Red", recorded_at=recorded_at))
    repository.add(_entry("second", "PETG", recorded_at=recorded_at))
    sqlite_session.commit()

    assert len(repository.for_pass("first")) == 1
    assert repository.latest_pass_id() == "second"
    entries = repository.for_pass("second")
    assert [entry.target_id for entry in entries] == ["PLA Red", "PETG"]
    assert entries[0] == _entry("second", "PLA Red", recorded_at=recorded_at)
    assert repository.for_pass("missing") == []
