"""Spoolman configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import require_env_vars
from .http_resilience import ResilienceConfig, resilience_from_env

SPOOLMAN_URL_ENV = "SPOOLMAN_URL"
SPOOLMAN_TIMEOUT_SECONDS = 10.0
SPOOLMAN_CALLS_PER_SECOND = 10.0
SPOOLMAN_EXTRA_FIELD_PREFIX = "spoolsync_"


@dataclass(frozen=True, slots=True)
class SpoolmanConfig:
    """Holds Spoolman API configuration values."""

    base_url: str
    resilience: ResilienceConfig
    extra_field_prefix: str = SPOOLMAN_EXTRA_FIELD_PREFIX

    @property
    def filament_endpoint(self) -> str:
        return "/api/v1/filament"


def get_spoolman_config(*, resilience: ResilienceConfig | None = None) -> SpoolmanConfig:
    values = require_env_vars((SPOOLMAN_URL_ENV,))
    base_url = values[SPOOLMAN_URL_ENV].strip().rstrip("/")
    return SpoolmanConfig(
        base_url=base_url,
        resilience=resilience
        or resilience_from_env(
            "SPOOLMAN",
            base_url=base_url,
            timeout_seconds=SPOOLMAN_TIMEOUT_SECONDS,
            calls_per_second=SPOOLMAN_CALLS_PER_SECOND,
            default_headers={"Accept": "application/json"},
        ),
    )
