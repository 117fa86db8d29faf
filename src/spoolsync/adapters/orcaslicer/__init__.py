"""Public interface for the OrcaSlicer adapter."""

from __future__ import annotations

from .schema import ConfigNotes, FilamentPreset
from .store import OrcaSlicerStore
from .translator import preset_to_profile
from .watcher import PresetWatcher, is_preset_change

__all__ = [
    "ConfigNotes",
    "FilamentPreset",
    "OrcaSlicerStore",
    "PresetWatcher",
    "is_preset_change",
    "preset_to_profile",
]
