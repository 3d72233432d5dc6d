"""Timeout, retry and rate-limit settings for HTTP calls to node-local services."""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx

DEFAULT_USER_AGENT = "edgeconverge"


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Bounded retries of idempotent requests.

    Only connection-level failures and gateway/overload statuses are retried;
    any other status is handed back to the caller as is.
    """

    total: int = 2
    backoff_factor: float = 0.5
    max_backoff_wait: float = 10.0
    retry_statuses: frozenset[int] = frozenset({429, 502, 503, 504})
    retry_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.ConnectError,
        httpx.TimeoutException,
        httpx.RemoteProtocolError,
    )


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    timeout_seconds: float = 10.0
    connect_timeout_seconds: float = 3.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    user_agent: str = DEFAULT_USER_AGENT

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout_seconds, connect=self.connect_timeout_seconds)
