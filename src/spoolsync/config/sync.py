"""Reconciliation defaults and their environment overrides."""

from __future__ import annotations

from dataclasses import dataclass, field

from .env import env_bool, env_float, env_int, env_list

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_MAX_PARALLEL_CHAINS = 4
DEFAULT_BACKOFF_BASE_SECONDS = 0.5
DEFAULT_BACKOFF_MAX_SECONDS = 30.0
DEFAULT_POLL_INTERVAL_SECONDS = 30.0
DEFAULT_INHERITANCE_PRECEDENCE = 0
DEFAULT_NEVER_SYNC_PROPERTIES = (
    "compatible_printers",
    "compatible_printers_condition",
    "filament_settings_id",
)


@dataclass(frozen=True, slots=True, kw_only=True)
class SyncConfig:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    max_parallel_chains: int = DEFAULT_MAX_PARALLEL_CHAINS
    backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS
    backoff_max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    inheritance_precedence: int = DEFAULT_INHERITANCE_PRECEDENCE
    never_sync_properties: frozenset[str] = field(
        default_factory=lambda: frozenset(DEFAULT_NEVER_SYNC_PROPERTIES)
    )
    propagate_deletes: bool = False
    adopt_remote: bool = True
    watch_files: bool = True


def get_sync_config() -> SyncConfig:
    never_sync = env_list("SPOOLSYNC_NEVER_SYNC")
    return SyncConfig(
        max_attempts=env_int("SPOOLSYNC_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS, minimum=1),
        max_parallel_chains=env_int(
            "SPOOLSYNC_MAX_PARALLEL", DEFAULT_MAX_PARALLEL_CHAINS, minimum=1
        ),
        backoff_base_seconds=env_float(
            "SPOOLSYNC_BACKOFF_BASE", DEFAULT_BACKOFF_BASE_SECONDS, minimum=0.0
        ),
        backoff_max_seconds=env_float(
            "SPOOLSYNC_BACKOFF_MAX", DEFAULT_BACKOFF_MAX_SECONDS, minimum=0.0
        ),
        poll_interval_seconds=env_float(
            "SPOOLSYNC_POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS, minimum=1.0
        ),
        inheritance_precedence=env_int(
            "SPOOLSYNC_INHERITANCE_PRECEDENCE", DEFAULT_INHERITANCE_PRECEDENCE
        ),
        never_sync_properties=frozenset(
            DEFAULT_NEVER_SYNC_PROPERTIES if never_sync is None else never_sync
        ),
        propagate_deletes=env_bool("SPOOLSYNC_PROPAGATE_DELETES", False),
        adopt_remote=env_bool("SPOOLSYNC_ADOPT_REMOTE", True),
        watch_files=env_bool("SPOOLSYNC_WATCH_FILES", True),
    )
