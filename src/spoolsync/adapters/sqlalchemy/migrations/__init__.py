"""Alembic migrations of the sync journal.

The ``[tool.alembic]`` table in pyproject.toml serves the ``alembic`` command
line during development; at runtime the scripts shipped next to this module
are used, so installed copies migrate the same way.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Final

from alembic import command
from alembic.config import Config

from spoolsync.config import get_database_config

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

MIGRATIONS_PATH: Final[Path] = Path(__file__).resolve().parent


def _journal_config() -> Config:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_PATH))
    return config


def upgrade_head(*, engine: Engine | None = None, database_uri: str | None = None) -> None:
    """Migrate the journal to the latest revision.

    ``engine`` is migrated on one of its own connections; otherwise
    ``database_uri`` (or the configured journal) is opened for the upgrade.
    """

    config = _journal_config()
    if engine is not None:
        with engine.begin() as connection:
            config.attributes["connection"] = connection
            command.upgrade(config, "head")
        return
    config.set_main_option("sqlalchemy.url", database_uri or get_database_config().uri)
    command.upgrade(config, "head")
