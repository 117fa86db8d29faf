"""Retry and rate-limit settings shared by the HTTP adapters."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from .env import env_float, env_int

if TYPE_CHECKING:
    from collections.abc import Mapping

ResponseHook = Callable[[httpx.Response], Awaitable[None] | None]

# POST stays out: the backends detect a replayed create against the snapshot
IDEMPOTENT_METHODS = frozenset({"DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "PUT"})
DEFAULT_RETRIES = 2


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Transport-level retries; the plan executor retries whole operations on top."""

    total: int = DEFAULT_RETRIES
    backoff_factor: float = 0.5
    max_backoff_wait: float = 10.0
    respect_retry_after_header: bool = True
    allowed_methods: frozenset[str] = IDEMPOTENT_METHODS
    status_forcelist: frozenset[int] = frozenset({429, 500, 502, 503, 504})
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )
    backoff_jitter: float = 1.0


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    base_url: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    response_hooks: tuple[ResponseHook, ...] = field(default_factory=tuple)
    default_headers: Mapping[str, str] | None = None


def resilience_from_env(
    prefix: str,
    *,
    base_url: str,
    timeout_seconds: float,
    calls_per_second: float,
    default_headers: Mapping[str, str] | None = None,
) -> ResilienceConfig:
    """Service settings overridable through ``{prefix}_TIMEOUT``, ``_RETRIES``, ``_RATE_LIMIT``.

    The rate limit is in calls per second; ``0`` disables throttling.
    """

    timeout = env_float(f"{prefix}_TIMEOUT", timeout_seconds, minimum=0.1)
    retries = env_int(f"{prefix}_RETRIES", DEFAULT_RETRIES, minimum=0)
    rate = env_float(f"{prefix}_RATE_LIMIT", calls_per_second, minimum=0.0)
    return ResilienceConfig(
        name=prefix.lower(),
        base_url=base_url,
        timeout_seconds=timeout,
        retry=RetryPolicy(total=retries),
        ratelimit=RateLimit(max_calls=1, per_seconds=1.0 / rate) if rate else None,
        default_headers=default_headers,
    )
