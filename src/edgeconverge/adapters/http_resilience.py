"""Retrying, rate-limited HTTP client for services reachable from the node."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import Retry, RetryTransport

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from edgeconverge.config.http_resilience import ResilienceConfig, RetryPolicy

log = getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        allowed_methods=IDEMPOTENT_METHODS,
        status_forcelist=policy.retry_statuses,
        retry_on_exceptions=policy.retry_exceptions,
    )


class ResilientClient:
    """``httpx.AsyncClient`` with transport-level retries and an optional call budget.

    One limiter slot covers a request together with its retries. ``transport``
    replaces the network transport beneath the retry layer, which is how tests
    plug in ``httpx.MockTransport``.
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
            if config.ratelimit is not None
            else None
        )
        self._client = httpx.AsyncClient(
            transport=RetryTransport(
                transport=transport or httpx.AsyncHTTPTransport(),
                retry=build_retry(config.retry),
            ),
            timeout=config.timeout(),
            headers={"User-Agent": config.user_agent},
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

    async def get(self, url: str, *, headers: Mapping[str, str] | None = None) -> httpx.Response:
        if self._limiter is None:
            return await self._get(url, headers)
        async with self._limiter:
            return await self._get(url, headers)

    async def _get(self, url: str, headers: Mapping[str, str] | None) -> httpx.Response:
        response = await self._client.get(url, headers=headers)
        log.debug("[%s] GET %s -> %d", self.config.name, url, response.status_code)
        return response
