"""Alembic environment for the sync journal."""

from __future__ import annotations

import logging
from logging.config import fileConfig
from pathlib import Path
from typing import TYPE_CHECKING

from alembic import context
from sqlalchemy import create_engine, pool

from spoolsync.adapters.sqlalchemy.tables import metadata
from spoolsync.config import get_database_config

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

config = context.config

if config.config_file_name is not None:
    config_path = Path(config.config_file_name)
    if config_path.suffix == ".ini" and config_path.exists():
        fileConfig(config.config_file_name)

log = logging.getLogger("alembic.env")

# SQLite cannot ALTER most constraints, so every migration runs in batch mode
_CONFIGURE_OPTIONS = {
    "target_metadata": metadata,
    "render_as_batch": True,
    "compare_type": True,
    "compare_server_default": True,
}


def _database_url() -> str:
    return config.get_main_option("sqlalchemy.url") or get_database_config().uri


def _migrate(connection: Connection) -> None:
    context.configure(connection=connection, **_CONFIGURE_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit the journal migrations as SQL without a database connection."""

    context.configure(url=_database_url(), literal_binds=True, **_CONFIGURE_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Migrate the caller's connection when ``upgrade_head`` passed one, else the journal URL."""

    existing_connection = config.attributes.get("connection")
    if existing_connection is not None:
        _migrate(existing_connection)
        return

    engine = create_engine(_database_url(), poolclass=pool.NullPool, future=True)
    log.info("Migrating sync journal at %s", engine.url.render_as_string(hide_password=True))
    try:
        with engine.connect() as connection:
            _migrate(connection)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
