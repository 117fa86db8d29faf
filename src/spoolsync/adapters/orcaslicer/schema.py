"""Pydantic models for OrcaSlicer user filament presets.

A user preset is a flat JSON object. Most option values are lists holding a
single string; ``filament_notes`` is such a list, and this service keeps a
JSON object in its single string.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Final, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator

from spoolsync.domain.model import SyncMode

NOTES_KEY: Final = "filament_notes"
MAX_DEBUG_ENTRIES: Final = 20

# preset bookkeeping keys, never treated as filament properties
METADATA_KEYS: Final = frozenset(
    {
        "name",
        "inherits",
        NOTES_KEY,
        "from",
        "version",
        "is_custom_defined",
        "instantiation",
        "setting_id",
        "base_id",
        "filament_id",
        "type",
    }
)


class DebugEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    data: str
    timestamp: int


class ErrorEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str


class ConfigNotes(BaseModel):
    """Sync metadata kept in a preset's ``filament_notes``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    spoolman_id: int | None = None
    spoolman_force_push: bool | None = None
    spoolman_force_pull: bool | None = None
    allow_upward_propagation: bool = False
    dry_run: bool = False
    last_modified: int | None = None
    reconciliation_status: str | None = None
    sync_modes: dict[str, SyncMode] = Field(default_factory=dict[str, SyncMode])
    tags: list[str] = Field(default_factory=list[str])
    debug: list[DebugEntry] = Field(default_factory=list[DebugEntry])
    errors: list[ErrorEntry] = Field(default_factory=list[ErrorEntry])

    def record(self, status: str, *, timestamp: int) -> None:
        self.reconciliation_status = status
        self.debug.append(DebugEntry(data=status, timestamp=timestamp))
        del self.debug[:-MAX_DEBUG_ENTRIES]


class FilamentPreset(BaseModel):
    """One preset file; every non-modelled key lands in ``model_extra``."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    inherits: str | None = None
    notes: ConfigNotes = Field(default_factory=ConfigNotes, alias=NOTES_KEY)

    @field_validator("inherits", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("notes", mode="before")
    @classmethod
    def _parse_notes(cls, value: object) -> object:
        if isinstance(value, list):
            items = cast(list[object], value)
            value = items[0] if items else None
        if value is None:
            return {}
        if isinstance(value, str):
            if not value.strip():
                return {}
            try:
                decoded = json.loads(value)
            except json.JSONDecodeError:
                # free-form notes written by hand
                return {"user_notes": value}
            return decoded if isinstance(decoded, Mapping) else {"user_notes": value}
        return value

    @property
    def options(self) -> dict[str, object]:
        """Filament options of the preset, bookkeeping keys excluded."""

        extra = self.model_extra or {}
        return {key: value for key, value in extra.items() if key not in METADATA_KEYS}


def dump_notes(notes: ConfigNotes) -> list[str]:
    document = notes.model_dump(mode="json", exclude_defaults=True)
    return [json.dumps(document, sort_keys=True)]
