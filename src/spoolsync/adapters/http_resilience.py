"""Rate-limited ``httpx.AsyncClient`` with transport-level retries."""

from __future__ import annotations

import time
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import Retry, RetryTransport

if TYPE_CHECKING:
    from types import TracebackType

    from spoolsync.config.http_resilience import ResilienceConfig, RetryPolicy

log = getLogger(__name__)


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        respect_retry_after_header=policy.respect_retry_after_header,
        allowed_methods=tuple(policy.allowed_methods),
        status_forcelist=tuple(policy.status_forcelist),
        retry_on_exceptions=policy.retry_on_exceptions,
        backoff_jitter=policy.backoff_jitter,
    )


class ResilientClient:
    """One service's HTTP client.

    Requests wait for the rate limiter, then go through a retry transport.
    ``transport`` replaces the network transport underneath the retry layer;
    tests pass an ``httpx.MockTransport`` here.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._limiter = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit
            else None
        )
        self._client = httpx.AsyncClient(
            base_url=config.base_url or "",
            timeout=config.timeout_seconds,
            headers=dict(config.default_headers or {}),
            event_hooks={"response": list(config.response_hooks)},
            transport=RetryTransport(transport=transport, retry=build_retry(config.retry)),
        )

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, url: str, *, json: object = None) -> httpx.Response:
        """Send one request; ``json=None`` sends no body."""

        if self._limiter is not None:
            await self._limiter.acquire()
        started = time.monotonic()
        if json is None:
            response = await self._client.request(method, url)
        else:
            response = await self._client.request(method, url, json=json)
        log.debug(
            "%s %s %s -> %s (%.0f ms)",
            self.config.name,
            method,
            url,
            response.status_code,
            (time.monotonic() - started) * 1000,
        )
        return response
