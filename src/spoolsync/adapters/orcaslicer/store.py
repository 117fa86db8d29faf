"""OrcaSlicer user filament presets as the local side of the sync."""

from __future__ import annotations

import asyncio
import json
import os
import re
import time
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from spoolsync.domain.ports import ApplyOutcome
from spoolsync.domain.reconciliation.errors import BackendUnavailable, OperationRejected
from spoolsync.domain.reconciliation.plan import OperationKind

from .schema import NOTES_KEY, ConfigNotes, FilamentPreset, dump_notes
from .translator import apply_payload, preset_to_profile, profile_id_of

if TYPE_CHECKING:
    from collections.abc import Callable, Collection

    from spoolsync.config import OrcaSlicerConfig
    from spoolsync.domain.model import Profile
    from spoolsync.domain.reconciliation.plan import SyncOperation

log = getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


@dataclass(slots=True)
class _PresetFile:
    path: Path
    preset: FilamentPreset
    document: dict[str, object]
    mtime: int


class OrcaSlicerStore:
    """``ProfileBackend`` over a directory of OrcaSlicer user filament presets.

    Presets that fail to parse, or whose notes carry ``errors``, are skipped
    and logged; they never take part in reconciliation.
    """

    def __init__(
        self,
        config: OrcaSlicerConfig,
        *,
        never_sync: Collection[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.never_sync = frozenset(never_sync)
        self._clock = clock
        self._paths: dict[str, Path] = {}
        self._applied: set[str] = set()

    @property
    def directory(self) -> Path:
        return self.config.resolve_filament_dir()

    async def fetch_snapshot(self) -> list[Profile]:
        return await asyncio.to_thread(self.load_profiles)

    async def apply(self, operation: SyncOperation) -> ApplyOutcome:
        if operation.key in self._applied:
            return ApplyOutcome(replayed=True)
        outcome = await asyncio.to_thread(self._apply_sync, operation)
        self._applied.add(operation.key)
        return outcome

    def load_profiles(self) -> list[Profile]:
        files = self._scan()
        known_ids = set(files)
        profiles = [
            preset_to_profile(
                entry.preset,
                profile_id=profile_id,
                known_ids=known_ids,
                mtime=entry.mtime,
                never_sync=self.never_sync,
            )
            for profile_id, entry in sorted(files.items())
        ]
        self._paths = {profile_id: entry.path for profile_id, entry in files.items()}
        log.debug("Loaded %s presets from %s", len(profiles), self.directory)
        return profiles

    def _scan(self) -> dict[str, _PresetFile]:
        directory = self.directory
        if not directory.is_dir():
            raise BackendUnavailable(f"OrcaSlicer filament directory not found: {directory}")

        files: dict[str, _PresetFile] = {}
        for path in sorted(directory.glob("*.json")):
            entry = _read_preset(path)
            if entry is None:
                continue
            notes = entry.preset.notes
            if notes.errors:
                log.warning(
                    "Skipping preset %s: notes carry %s error(s): %s",
                    path.name,
                    len(notes.errors),
                    "; ".join(error.message for error in notes.errors),
                )
                continue
            profile_id = profile_id_of(entry.preset, fallback=path.stem)
            if profile_id in files:
                log.warning(
                    "Skipping preset %s: name %r already used by %s",
                    path.name,
                    profile_id,
                    files[profile_id].path.name,
                )
                continue
            files[profile_id] = entry
        return files

    def _apply_sync(self, operation: SyncOperation) -> ApplyOutcome:
        path = self._paths.get(operation.target_id)
        if path is None or not path.exists():
            path = self._locate(operation.target_id)

        if operation.kind is OperationKind.DELETE:
            if path is None:
                return ApplyOutcome(replayed=True)
            try:
                path.unlink()
            except FileNotFoundError:
                return ApplyOutcome(replayed=True)
            except OSError as exc:
                raise BackendUnavailable(f"Could not delete {path}: {exc}") from exc
            self._paths.pop(operation.target_id, None)
            log.info("Deleted preset %s", path.name)
            return ApplyOutcome()

        replayed = False
        if path is None:
            if operation.kind is OperationKind.UPDATE:
                raise OperationRejected(
                    f"No preset for profile {operation.target_id!r}", operation=operation
                )
            path = self.directory / f"{_safe_filename(operation.target_id)}.json"
            document = _new_document(operation)
            notes = ConfigNotes()
        else:
            entry = _read_preset(path)
            if entry is None:
                raise OperationRejected(f"Preset {path} is unreadable", operation=operation)
            document = entry.document
            notes = entry.preset.notes
            replayed = operation.kind is OperationKind.CREATE

        now = int(self._clock())
        document = apply_payload(document, operation.payload)
        notes.last_modified = max(operation.revision or 0, notes.last_modified or 0) or now
        notes.record(f"updated_local:{operation.kind}", timestamp=now)
        document[NOTES_KEY] = dump_notes(notes)
        _write_json(path, document)
        self._paths[operation.target_id] = path
        log.info("Wrote preset %s (%s)", path.name, operation.kind)
        return ApplyOutcome(replayed=replayed)

    def _locate(self, profile_id: str) -> Path | None:
        for path in sorted(self.directory.glob("*.json")):
            entry = _read_preset(path)
            if entry is not None and profile_id_of(entry.preset, fallback=path.stem) == profile_id:
                return path
        return None


def _read_preset(path: Path) -> _PresetFile | None:
    try:
        raw = path.read_text(encoding="utf-8")
        mtime = int(path.stat().st_mtime)
    except OSError as exc:
        log.warning("Skipping preset %s: %s", path.name, exc)
        return None
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        log.warning("Skipping preset %s: invalid JSON (%s)", path.name, exc)
        return None
    if not isinstance(document, dict):
        log.warning("Skipping preset %s: not a JSON object", path.name)
        return None
    try:
        preset = FilamentPreset.model_validate(document)
    except ValidationError as exc:
        log.warning("Skipping preset %s: %s", path.name, exc)
        return None
    return _PresetFile(path=path, preset=preset, document=document, mtime=mtime)


def _new_document(operation: SyncOperation) -> dict[str, object]:
    document: dict[str, object] = {
        "from": "User",
        "inherits": operation.parent_id or "",
        "is_custom_defined": "0",
        "name": operation.target_id,
        "filament_settings_id": [operation.target_id],
    }
    return document


def _write_json(path: Path, document: dict[str, object]) -> None:
    temporary = path.with_name(f".{path.name}.tmp")
    try:
        temporary.write_text(json.dumps(document, indent=4) + "\n", encoding="utf-8")
        os.replace(temporary, path)
    except OSError as exc:
        raise BackendUnavailable(f"Could not write {path}: {exc}") from exc


def _safe_filename(profile_id: str) -> str:
    return _UNSAFE_FILENAME.sub("_", profile_id).strip() or "profile"
