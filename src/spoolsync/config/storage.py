"""Where the sync journal lives.

The journal is a small SQLite database (tag rules, sync history, operation
log). ``DATABASE_URI`` points it anywhere SQLAlchemy can reach; otherwise it
is ``journal.db`` inside the per-user data directory.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Final

DATA_DIR_ENV: Final = "SPOOLSYNC_DATA_DIR"
DATABASE_URI_ENV: Final = "DATABASE_URI"
JOURNAL_FILENAME: Final = "journal.db"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    journal_filename: str = JOURNAL_FILENAME

    def journal_path(self, *, create_dir: bool = True) -> Path:
        data_dir = self.data_dir.expanduser().resolve()
        if create_dir:
            data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / self.journal_filename

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.journal_path()}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def default_data_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA")
        base_path = Path(base) if base else (Path.home() / "AppData" / "Local")
    elif sys.platform == "darwin":
        base_path = Path.home() / "Library" / "Application Support"
    else:
        base = os.getenv("XDG_DATA_HOME")
        base_path = Path(base) if base else (Path.home() / ".local" / "share")
    return base_path / "spoolsync"


def get_storage_config() -> StorageConfig:
    env_dir = os.getenv(DATA_DIR_ENV)
    return StorageConfig(data_dir=Path(env_dir) if env_dir else default_data_dir())


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    env_uri = os.getenv(DATABASE_URI_ENV)
    if env_uri and env_uri.strip():
        return DatabaseConfig(uri=env_uri.strip())
    return DatabaseConfig(uri=(storage or get_storage_config()).database_uri())
