"""Translate between Spoolman filament records and profiles.

Spoolman has typed columns for the common filament attributes; everything
else (profile id, parent, revision, tags and the remaining properties) lives
in ``extra`` fields. Spoolman has no modification timestamp, so every write
also stores a hash of the property values it wrote: a record whose current
values no longer match the hash was edited in Spoolman since.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from spoolsync.domain.model import Profile, ProfileOrigin, PropertyValue, SyncMode, normalize_value
from spoolsync.domain.model import properties as props

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from spoolsync.domain.model import PropertyScalar

    from .schema import FilamentPayload

FIELD_MAP: Final[dict[str, str]] = {
    props.MATERIAL: "material",
    props.DENSITY: "density",
    props.DIAMETER: "diameter",
    props.NOZZLE_TEMPERATURE: "settings_extruder_temp",
    props.BED_TEMPERATURE: "settings_bed_temp",
    props.COLOR: "color_hex",
    props.COST: "price",
    props.NET_WEIGHT: "weight",
    props.SPOOL_WEIGHT: "spool_weight",
}
_INTEGER_FIELDS: Final = frozenset({"settings_extruder_temp", "settings_bed_temp"})

# Spoolman requires these on create; placeholders are written when a profile has none
PLACEHOLDER_VALUES: Final[dict[str, float]] = {"density": 1.24, "diameter": 1.75}

EXTRA_PROFILE_ID: Final = "profile_id"
EXTRA_PARENT_ID: Final = "parent_id"
EXTRA_REVISION: Final = "revision"
EXTRA_TAGS: Final = "tags"
EXTRA_PROPERTIES: Final = "properties"
EXTRA_STATE_HASH: Final = "state_hash"
EXTRA_PLACEHOLDERS: Final = "placeholders"
EXTRA_KEYS: Final = (
    EXTRA_PROFILE_ID,
    EXTRA_PARENT_ID,
    EXTRA_REVISION,
    EXTRA_TAGS,
    EXTRA_PROPERTIES,
    EXTRA_STATE_HASH,
    EXTRA_PLACEHOLDERS,
)


@dataclass(frozen=True, slots=True)
class RemoteFilament:
    profile: Profile
    record: FilamentPayload
    edited: bool


def encode_extra(value: object) -> str:
    """Encode ``value`` for a Spoolman text extra field.

    Text extra fields hold a JSON string literal, so structured values are
    JSON encoded twice.
    """

    return json.dumps(json.dumps(value, sort_keys=True))


def decode_extra(raw: str) -> object:
    value: object = raw
    for _ in range(2):
        if not isinstance(value, str):
            break
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            break
    return value


def property_hash(properties: Mapping[str, PropertyScalar]) -> str:
    canonical = {
        name: _canonical_number(value)
        for name, value in sorted(properties.items())
        if value is not None
    }
    document = json.dumps(canonical, sort_keys=True)
    return hashlib.sha256(document.encode("utf-8")).hexdigest()[:16]


def read_extras(record: FilamentPayload, *, prefix: str) -> dict[str, object]:
    return {
        key.removeprefix(prefix): decode_extra(raw)
        for key, raw in record.extra.items()
        if key.startswith(prefix)
    }


def record_properties(record: FilamentPayload, *, prefix: str) -> dict[str, PropertyScalar]:
    """Normalized property map of ``record``, typed columns winning over extras."""

    extras = read_extras(record, prefix=prefix)
    values: dict[str, PropertyScalar] = {}

    stored = extras.get(EXTRA_PROPERTIES)
    if isinstance(stored, dict):
        for name, raw in stored.items():
            value = normalize_value(str(name), raw)
            if value is not None:
                values[str(name)] = value

    placeholders = extras.get(EXTRA_PLACEHOLDERS)
    placeholder_fields = set(placeholders) if isinstance(placeholders, list) else set()
    for name, field_name in FIELD_MAP.items():
        raw = getattr(record, field_name)
        if field_name in placeholder_fields and raw == PLACEHOLDER_VALUES.get(field_name):
            continue
        value = normalize_value(name, raw)
        if value is not None:
            values[name] = value

    if record.vendor is not None:
        vendor = normalize_value(props.VENDOR, record.vendor.name)
        if vendor is not None:
            values[props.VENDOR] = vendor
    return values


def parse_filament(record: FilamentPayload, *, prefix: str, now: int) -> RemoteFilament:
    """Build the remote profile for ``record``.

    The revision is the one stored at the last write, or ``now`` when the
    record was edited in Spoolman since (or was never written by this service).
    """

    extras = read_extras(record, prefix=prefix)
    values = record_properties(record, prefix=prefix)

    profile_id = extras.get(EXTRA_PROFILE_ID) or record.name or f"spoolman-{record.id}"
    parent = extras.get(EXTRA_PARENT_ID)
    stored_revision = extras.get(EXTRA_REVISION)
    unchanged = extras.get(EXTRA_STATE_HASH) == property_hash(values)
    if isinstance(stored_revision, int) and unchanged:
        revision, edited = stored_revision, False
    else:
        revision, edited = now, True
    tags = extras.get(EXTRA_TAGS)

    profile = Profile(
        profile_id=str(profile_id),
        parent_id=str(parent) if parent else None,
        properties={
            name: PropertyValue(value, SyncMode.OVERRIDE) for name, value in values.items()
        },
        tags=frozenset(str(tag) for tag in tags) if isinstance(tags, list) else frozenset(),
        revision=revision,
        origin=ProfileOrigin.REMOTE,
        remote_ref=str(record.id),
    )
    return RemoteFilament(profile=profile, record=record, edited=edited)


def build_filament_body(
    *,
    profile_id: str,
    parent_id: str | None,
    revision: int,
    properties: Mapping[str, PropertyScalar],
    tags: Iterable[str],
    vendor_id: int | None,
    prefix: str,
) -> dict[str, object]:
    """Full create/patch body for one profile."""

    values = {name: value for name, value in properties.items() if value is not None}
    body: dict[str, object] = {"name": profile_id, "vendor_id": vendor_id}
    remaining: dict[str, PropertyScalar] = {}
    for name, value in sorted(values.items()):
        if name == props.VENDOR:
            continue
        field_name = FIELD_MAP.get(name)
        if field_name is None:
            remaining[name] = value
            continue
        body[field_name] = _to_field_value(field_name, value)

    for field_name in FIELD_MAP.values():
        body.setdefault(field_name, None)
    placeholders: list[str] = []
    for field_name, default in PLACEHOLDER_VALUES.items():
        if body[field_name] is None:
            body[field_name] = default
            placeholders.append(field_name)

    extras: dict[str, object] = {
        EXTRA_PROFILE_ID: profile_id,
        EXTRA_PARENT_ID: parent_id,
        EXTRA_REVISION: revision,
        EXTRA_TAGS: sorted(tags),
        EXTRA_PROPERTIES: remaining,
        EXTRA_STATE_HASH: property_hash(_as_read_back(values)),
        EXTRA_PLACEHOLDERS: placeholders,
    }
    body["extra"] = {f"{prefix}{key}": encode_extra(value) for key, value in extras.items()}
    return body


def _as_read_back(values: Mapping[str, PropertyScalar]) -> dict[str, PropertyScalar]:
    # values as record_properties will see them after the write
    read_back: dict[str, PropertyScalar] = {}
    for name, value in values.items():
        field_name = FIELD_MAP.get(name)
        if field_name is not None:
            value = normalize_value(name, _to_field_value(field_name, value))
        read_back[name] = value
    return read_back


def _to_field_value(field_name: str, value: PropertyScalar) -> PropertyScalar:
    if value is None:
        return None
    if field_name == "color_hex":
        return str(value).lstrip("#").upper()
    if field_name in _INTEGER_FIELDS and isinstance(value, int | float):
        return round(value)
    return value


def _canonical_number(value: PropertyScalar) -> PropertyScalar:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
