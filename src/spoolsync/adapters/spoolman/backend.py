"""Spoolman as the remote side of the sync."""

from __future__ import annotations

import time
from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING

from spoolsync.adapters.http_resilience import ResilientClient
from spoolsync.domain.model import properties as props
from spoolsync.domain.ports import ApplyOutcome
from spoolsync.domain.reconciliation.errors import OperationRejected, ReconciliationError
from spoolsync.domain.reconciliation.plan import OperationKind

from .client import SpoolmanClient
from .translator import (
    EXTRA_KEYS,
    EXTRA_TAGS,
    build_filament_body,
    parse_filament,
    read_extras,
    record_properties,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType

    import httpx

    from spoolsync.config import SpoolmanConfig
    from spoolsync.domain.model import Profile, PropertyScalar
    from spoolsync.domain.reconciliation.plan import SyncOperation

    from .schema import FilamentPayload

log = getLogger(__name__)


class SpoolmanBackend:
    """``ProfileBackend`` over the Spoolman filament API.

    Use as an async context manager; the HTTP client lives for the whole
    ``async with`` block.

    With ``acknowledge_edits`` set, records edited in Spoolman are re-stamped
    during ``fetch_snapshot`` so the edit keeps the revision it was first seen
    at. Dry runs turn this off to stay read-only.
    """

    def __init__(
        self,
        config: SpoolmanConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        acknowledge_edits: bool = True,
    ) -> None:
        self.config = config
        self._transport = transport
        self._clock = clock
        self._acknowledge_edits = acknowledge_edits
        self._http: ResilientClient | None = None
        self._api: SpoolmanClient | None = None
        self._records: dict[str, FilamentPayload] | None = None
        self._vendors: dict[str, int] | None = None
        self._fields_ready = False
        self._applied: dict[str, str | None] = {}

    async def __aenter__(self) -> SpoolmanBackend:
        self._http = ResilientClient(self.config.resilience, transport=self._transport)
        self._api = SpoolmanClient(self._http)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._http is not None:
            await self._http.aclose()
        self._http = None
        self._api = None

    @property
    def api(self) -> SpoolmanClient:
        if self._api is None:
            raise RuntimeError("SpoolmanBackend must be used as an async context manager")
        return self._api

    async def fetch_snapshot(self) -> list[Profile]:
        await self._ensure_extra_fields()
        records = await self.api.list_filaments()
        now = int(self._clock())
        prefix = self.config.extra_field_prefix

        index: dict[str, FilamentPayload] = {}
        profiles: list[Profile] = []
        for record in sorted(records, key=lambda item: item.id):
            remote = parse_filament(record, prefix=prefix, now=now)
            profile = remote.profile
            if profile.profile_id in index:
                log.warning(
                    "Ignoring Spoolman filament %s: profile %r already mapped to filament %s",
                    record.id,
                    profile.profile_id,
                    index[profile.profile_id].id,
                )
                continue
            if remote.edited and self._acknowledge_edits:
                record = await self._acknowledge(profile, record)
            index[profile.profile_id] = record
            profiles.append(profile)

        known = set(index)
        for position, profile in enumerate(profiles):
            if profile.parent_id is not None and profile.parent_id not in known:
                log.warning(
                    "Spoolman profile %r names missing parent %r; treating it as a root",
                    profile.profile_id,
                    profile.parent_id,
                )
                profiles[position] = replace(profile, parent_id=None)

        self._records = index
        log.debug("Fetched %s filaments from Spoolman", len(profiles))
        return profiles

    async def apply(self, operation: SyncOperation) -> ApplyOutcome:
        if operation.key in self._applied:
            return ApplyOutcome(remote_ref=self._applied[operation.key], replayed=True)

        await self._ensure_extra_fields()
        if operation.kind is OperationKind.CREATE and operation.attempts > 1:
            # an earlier attempt may have been stored even though its response was lost
            await self._refresh_records()
        record = await self._lookup(operation.target_id)
        if operation.kind is OperationKind.DELETE:
            outcome = await self._delete(operation, record)
        elif operation.kind is OperationKind.CREATE:
            outcome = await self._upsert(operation, record, base={})
        else:
            if record is None:
                raise OperationRejected(
                    f"No Spoolman filament for profile {operation.target_id!r}",
                    operation=operation,
                )
            base = record_properties(record, prefix=self.config.extra_field_prefix)
            outcome = await self._upsert(operation, record, base=base)

        self._applied[operation.key] = outcome.remote_ref
        return outcome

    async def _upsert(
        self,
        operation: SyncOperation,
        record: FilamentPayload | None,
        *,
        base: Mapping[str, PropertyScalar],
    ) -> ApplyOutcome:
        values = dict(base)
        for name, value in operation.payload.items():
            if value is None:
                values.pop(name, None)
            else:
                values[name] = value

        tags: list[str] = []
        if record is not None:
            stored = read_extras(record, prefix=self.config.extra_field_prefix).get(EXTRA_TAGS)
            tags = [str(tag) for tag in stored] if isinstance(stored, list) else []

        body = build_filament_body(
            profile_id=operation.target_id,
            parent_id=operation.parent_id,
            revision=operation.revision or int(self._clock()),
            properties=values,
            tags=tags,
            vendor_id=await self._vendor_id(values.get(props.VENDOR)),
            prefix=self.config.extra_field_prefix,
        )
        try:
            if record is None:
                saved = await self.api.create_filament(body)
                replayed = False
            else:
                # a create whose profile already exists was applied before
                saved = await self.api.update_filament(record.id, body)
                replayed = operation.kind is OperationKind.CREATE
        except OperationRejected as exc:
            raise OperationRejected(str(exc), operation=operation) from exc

        self._remember(operation.target_id, saved)
        return ApplyOutcome(remote_ref=str(saved.id), replayed=replayed)

    async def _delete(
        self, operation: SyncOperation, record: FilamentPayload | None
    ) -> ApplyOutcome:
        if record is None:
            return ApplyOutcome(replayed=True)
        try:
            deleted = await self.api.delete_filament(record.id)
        except OperationRejected as exc:
            raise OperationRejected(str(exc), operation=operation) from exc
        if self._records is not None:
            self._records.pop(operation.target_id, None)
        return ApplyOutcome(remote_ref=str(record.id), replayed=not deleted)

    async def _acknowledge(self, profile: Profile, record: FilamentPayload) -> FilamentPayload:
        body = build_filament_body(
            profile_id=profile.profile_id,
            parent_id=profile.parent_id,
            revision=profile.revision,
            properties={name: value.value for name, value in profile.properties.items()},
            tags=profile.tags,
            vendor_id=record.vendor.id if record.vendor is not None else None,
            prefix=self.config.extra_field_prefix,
        )
        try:
            return await self.api.update_filament(record.id, body)
        except ReconciliationError as exc:
            log.warning("Could not stamp Spoolman filament %s: %s", record.id, exc)
            return record

    async def _lookup(self, profile_id: str) -> FilamentPayload | None:
        if self._records is None:
            await self.fetch_snapshot()
        return (self._records or {}).get(profile_id)

    async def _refresh_records(self) -> None:
        prefix = self.config.extra_field_prefix
        now = int(self._clock())
        index: dict[str, FilamentPayload] = {}
        for record in sorted(await self.api.list_filaments(), key=lambda item: item.id):
            profile_id = parse_filament(record, prefix=prefix, now=now).profile.profile_id
            index.setdefault(profile_id, record)
        self._records = index

    def _remember(self, profile_id: str, record: FilamentPayload) -> None:
        if self._records is None:
            self._records = {}
        self._records[profile_id] = record

    async def _vendor_id(self, name: PropertyScalar) -> int | None:
        if name is None:
            return None
        vendor_name = str(name)
        if self._vendors is None:
            self._vendors = {vendor.name: vendor.id for vendor in await self.api.list_vendors()}
        if vendor_name not in self._vendors:
            created = await self.api.create_vendor(vendor_name)
            log.info("Created Spoolman vendor %r", vendor_name)
            self._vendors[vendor_name] = created.id
        return self._vendors[vendor_name]

    async def _ensure_extra_fields(self) -> None:
        if self._fields_ready:
            return
        prefix = self.config.extra_field_prefix
        existing = {field.key for field in await self.api.list_extra_fields()}
        for key in EXTRA_KEYS:
            name = f"{prefix}{key}"
            if name not in existing:
                log.info("Registering Spoolman extra field %r", name)
                await self.api.add_extra_field(name, name=f"spoolsync {key.replace('_', ' ')}")
        self._fields_ready = True

