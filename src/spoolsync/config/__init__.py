"""Application configuration helpers."""

from __future__ import annotations

from .env import require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .orcaslicer import OrcaSlicerConfig, get_orcaslicer_config
from .spoolman import SpoolmanConfig, get_spoolman_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .sync import SyncConfig, get_sync_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "OrcaSlicerConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "SpoolmanConfig",
    "StorageConfig",
    "SyncConfig",
    "configure_logging",
    "get_database_config",
    "get_orcaslicer_config",
    "get_spoolman_config",
    "get_storage_config",
    "get_sync_config",
    "require_env_vars",
]
