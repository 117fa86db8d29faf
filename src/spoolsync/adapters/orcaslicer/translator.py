"""Translate OrcaSlicer presets into profiles and operations back into presets."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from spoolsync.domain.model import (
    ForceDirection,
    Profile,
    ProfileOptions,
    ProfileOrigin,
    PropertyValue,
    SyncMode,
    normalize_value,
)
from spoolsync.domain.model import properties as props

from .schema import NOTES_KEY

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

    from spoolsync.domain.model import PropertyScalar

    from .schema import ConfigNotes, FilamentPreset

log = getLogger(__name__)


def profile_id_of(preset: FilamentPreset, *, fallback: str) -> str:
    return preset.name.strip() if preset.name and preset.name.strip() else fallback


def preset_to_profile(
    preset: FilamentPreset,
    *,
    profile_id: str,
    known_ids: Collection[str],
    mtime: int,
    never_sync: Collection[str],
) -> Profile:
    """Build the local profile for one preset file.

    Every option present in a user preset was changed from its parent, so it
    is an ``override`` unless the notes say otherwise. A parent outside the
    user presets (a system preset) is kept as a ``never_sync`` property.
    """

    notes = preset.notes
    properties: dict[str, PropertyValue] = {}
    for name, raw in preset.options.items():
        mode = notes.sync_modes.get(name, SyncMode.OVERRIDE)
        if name in never_sync:
            mode = SyncMode.NEVER_SYNC
        properties[name] = PropertyValue(normalize_value(name, raw), mode)

    parent_id: str | None = None
    if preset.inherits is not None:
        if preset.inherits in known_ids and preset.inherits != profile_id:
            parent_id = preset.inherits
        else:
            properties[props.INHERITS] = PropertyValue(preset.inherits, SyncMode.NEVER_SYNC)

    return Profile(
        profile_id=profile_id,
        parent_id=parent_id,
        properties=properties,
        tags=frozenset(notes.tags),
        revision=max(notes.last_modified or 0, mtime),
        origin=ProfileOrigin.LOCAL,
        options=_options(profile_id, notes),
        remote_ref=str(notes.spoolman_id) if notes.spoolman_id is not None else None,
    )


def _options(profile_id: str, notes: ConfigNotes) -> ProfileOptions:
    force: ForceDirection | None = None
    if notes.spoolman_force_push and notes.spoolman_force_pull:
        log.warning("Preset %r forces both push and pull; ignoring both", profile_id)
    elif notes.spoolman_force_push:
        force = ForceDirection.PUSH
    elif notes.spoolman_force_pull:
        force = ForceDirection.PULL
    return ProfileOptions(
        allow_upward_propagation=notes.allow_upward_propagation,
        force_direction=force,
        dry_run=notes.dry_run,
    )


def format_option(value: PropertyScalar) -> list[str]:
    """Serialize one value the way OrcaSlicer stores filament options."""

    if isinstance(value, bool):
        return ["1" if value else "0"]
    return [str(value)]


def apply_payload(
    document: dict[str, object],
    payload: Mapping[str, PropertyScalar],
) -> dict[str, object]:
    """Return ``document`` with ``payload`` written into it; ``None`` removes a key."""

    updated = dict(document)
    for name, value in payload.items():
        if name in (NOTES_KEY, "name", props.INHERITS):
            continue
        if value is None:
            updated.pop(name, None)
        else:
            updated[name] = format_option(value)
    return updated
