"""OrcaSlicer preset directory configuration."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .errors import ConfigurationError

ORCASLICER_FILAMENT_DIR_ENV: Final[str] = "ORCASLICER_FILAMENT_DIR"


@dataclass(frozen=True, slots=True)
class OrcaSlicerConfig:
    filament_dir: Path

    def resolve_filament_dir(self) -> Path:
        return self.filament_dir.expanduser().resolve()


def _default_filament_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("APPDATA")
        base_path = Path(base) if base else (Path.home() / "AppData" / "Roaming")
    elif sys.platform == "darwin":
        base_path = Path.home() / "Library" / "Application Support"
    else:
        base = os.getenv("XDG_CONFIG_HOME")
        base_path = Path(base) if base else (Path.home() / ".config")
    return base_path / "OrcaSlicer" / "user" / "default" / "filament"


def get_orcaslicer_config() -> OrcaSlicerConfig:
    env_dir = os.getenv(ORCASLICER_FILAMENT_DIR_ENV)
    filament_dir = Path(env_dir) if env_dir else _default_filament_dir()
    if filament_dir.exists() and not filament_dir.is_dir():
        raise ConfigurationError(
            f"{ORCASLICER_FILAMENT_DIR_ENV} is not a directory: {filament_dir}",
            variable=ORCASLICER_FILAMENT_DIR_ENV,
        )
    return OrcaSlicerConfig(filament_dir=filament_dir)
