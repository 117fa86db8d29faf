"""Shared logging helpers for spoolsync."""

from __future__ import annotations

import logging
import os

from .errors import ConfigurationError

LOG_LEVEL_ENV = "SPOOLSYNC_LOG_LEVEL"


def configure_logging(*, level: int | None = None, force: bool = False) -> None:
    """Initialise the root logger once with sensible defaults.

    Parameters mirror ``logging.basicConfig`` with a simplified contract: the
    level defaults to ``SPOOLSYNC_LOG_LEVEL`` (INFO when unset) and the format
    is terse enough for CLI output. Pass ``force=True`` to reconfigure during
    tests or specialised entry points.
    """

    logging.basicConfig(
        level=level if level is not None else get_log_level(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )


def get_log_level() -> int:
    raw = os.getenv(LOG_LEVEL_ENV)
    if raw is None or not raw.strip():
        return logging.INFO
    level = logging.getLevelNamesMapping().get(raw.strip().upper())
    if level is None:
        raise ConfigurationError(
            f"{LOG_LEVEL_ENV} is not a log level: {raw!r}", variable=LOG_LEVEL_ENV
        )
    return level
