"""HTTP client for the local profile server."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Final
from urllib.parse import urlsplit

import httpx
from pydantic import ValidationError

from edgeconverge.adapters.http_resilience import ResilientClient

from .schema import LocalProfile

if TYPE_CHECKING:
    from collections.abc import Callable

    from edgeconverge.config.http_resilience import ResilienceConfig
    from edgeconverge.config.profile import ProfileServerConfig

log = getLogger(__name__)

DEFAULT_LPS_PORT: Final[int] = 8888
PROFILE_URL_PATH: Final[str] = "/api/v1/local_profile"


class LocalProfileError(RuntimeError):
    """Raised when the local profile cannot be fetched or is not trusted."""


def make_lps_base_url(lps_addr: str) -> str:
    """Return ``http://<addr>[:8888]`` for a server address without scheme or path."""

    lps_url = f"http://{lps_addr}"
    try:
        parsed = urlsplit(lps_url)
        port = parsed.port
    except ValueError as exc:
        msg = f"Invalid local profile server address {lps_addr!r}: {exc}"
        raise LocalProfileError(msg) from exc
    if not parsed.hostname:
        raise LocalProfileError(f"Invalid local profile server address {lps_addr!r}")
    if port is None:
        lps_url = f"{lps_url}:{DEFAULT_LPS_PORT}"
    return lps_url


class LocalProfileClient:
    """Fetches the local profile and checks the server token."""

    def __init__(
        self,
        *,
        config: ProfileServerConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._resilience = config.resilience
        self._client_factory = client_factory or ResilientClient

    async def fetch(self, base_url: str, token: str) -> LocalProfile:
        full_url = base_url + PROFILE_URL_PATH
        log.debug("Fetching local profile from %s", full_url)
        async with self._client_factory(self._resilience) as client:
            try:
                response = await client.get(full_url)
            except httpx.HTTPError as exc:
                raise LocalProfileError(f"Request to {full_url} failed: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise LocalProfileError(f"Wrong response status code: {response.status_code}")
        try:
            profile = LocalProfile.model_validate_json(response.content)
        except ValidationError as exc:
            raise LocalProfileError(f"Malformed local profile payload: {exc}") from exc
        if profile.server_token != token:
            raise LocalProfileError(
                f"Invalid token submitted by local server ({profile.server_token})"
            )
        return profile
