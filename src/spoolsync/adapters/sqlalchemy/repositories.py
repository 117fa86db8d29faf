"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import json
from datetime import UTC
from typing import TYPE_CHECKING

from sqlalchemy import delete, insert, select, update

from spoolsync.adapters.sqlalchemy.tables import (
    sync_operation_log_table,
    synced_profile_table,
    tag_rule_table,
)
from spoolsync.domain.model import OperationLogEntry, SyncedProfile, TagRule

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.orm import Session


def _ensure_aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class SqlAlchemyTagRuleRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: TagRule) -> None:
        encoded = json.dumps(entity.value)
        existing = self.session.execute(
            select(tag_rule_table.c.id)
            .where(tag_rule_table.c.tag == entity.tag)
            .where(tag_rule_table.c.property_name == entity.property_name)
            .where(tag_rule_table.c.precedence == entity.precedence)
            .where(tag_rule_table.c.value == encoded)
        ).scalar_one_or_none()
        if existing is not None:
            return
        self.session.execute(
            insert(tag_rule_table).values(
                tag=entity.tag,
                property_name=entity.property_name,
                value=encoded,
                precedence=entity.precedence,
            )
        )

    def list_rules(self) -> list[TagRule]:
        rows = self.session.execute(
            select(tag_rule_table).order_by(
                tag_rule_table.c.tag,
                tag_rule_table.c.property_name,
                tag_rule_table.c.precedence.desc(),
                tag_rule_table.c.id,
            )
        ).mappings()
        return [
            TagRule(
                tag=row["tag"],
                property_name=row["property_name"],
                value=json.loads(row["value"]),
                precedence=row["precedence"],
            )
            for row in rows
        ]

    def remove(self, *, tag: str, property_name: str) -> int:
        result = self.session.execute(
            delete(tag_rule_table)
            .where(tag_rule_table.c.tag == tag)
            .where(tag_rule_table.c.property_name == property_name)
        )
        return result.rowcount or 0


class SqlAlchemySyncStateRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, profile_id: str) -> SyncedProfile | None:
        row = (
            self.session.execute(
                select(synced_profile_table).where(
                    synced_profile_table.c.profile_id == profile_id
                )
            )
            .mappings()
            .one_or_none()
        )
        if row is None:
            return None
        return SyncedProfile(
            profile_id=row["profile_id"],
            remote_ref=row["remote_ref"],
            synced_at=_ensure_aware(row["synced_at"]),
        )

    def synced_ids(self) -> frozenset[str]:
        return frozenset(self.session.execute(select(synced_profile_table.c.profile_id)).scalars())

    def mark_synced(self, profile_id: str, *, remote_ref: str | None, synced_at: datetime) -> None:
        if self.get(profile_id) is None:
            self.session.execute(
                insert(synced_profile_table).values(
                    profile_id=profile_id, remote_ref=remote_ref, synced_at=synced_at
                )
            )
            return
        values: dict[str, object] = {"synced_at": synced_at}
        if remote_ref is not None:
            values["remote_ref"] = remote_ref
        self.session.execute(
            update(synced_profile_table)
            .where(synced_profile_table.c.profile_id == profile_id)
            .values(**values)
        )

    def forget(self, profile_id: str) -> None:
        self.session.execute(
            delete(synced_profile_table).where(synced_profile_table.c.profile_id == profile_id)
        )


class SqlAlchemyOperationLogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: OperationLogEntry) -> None:
        self.session.execute(
            insert(sync_operation_log_table).values(
                pass_id=entity.pass_id,
                operation_key=entity.operation_key,
                target_id=entity.target_id,
                side=entity.side,
                kind=entity.kind,
                state=entity.state,
                attempts=entity.attempts,
                error=entity.error,
                recorded_at=entity.recorded_at,
            )
        )

    def for_pass(self, pass_id: str) -> list[OperationLogEntry]:
        rows = self.session.execute(
            select(sync_operation_log_table)
            .where(sync_operation_log_table.c.pass_id == pass_id)
            .order_by(sync_operation_log_table.c.id)
        ).mappings()
        return [
            OperationLogEntry(
                pass_id=row["pass_id"],
                operation_key=row["operation_key"],
                target_id=row["target_id"],
                side=row["side"],
                kind=row["kind"],
                state=row["state"],
                attempts=row["attempts"],
                error=row["error"],
                recorded_at=_ensure_aware(row["recorded_at"]),
            )
            for row in rows
        ]

    def latest_pass_id(self) -> str | None:
        latest = (
            select(sync_operation_log_table.c.pass_id)
            .order_by(sync_operation_log_table.c.id.desc())
            .limit(1)
        )
        return self.session.execute(latest).scalar_one_or_none()
