"""Local profile server configuration values."""

from __future__ import annotations

from dataclasses import dataclass, field

from .env import optional_env_var, require_env_vars
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

PROFILE_TIMEOUT_SECONDS = 5.0
PROFILE_TOKEN_VAR = "EDGECONVERGE_PROFILE_TOKEN"


def _default_resilience() -> ResilienceConfig:
    return ResilienceConfig(
        name="local-profile",
        timeout_seconds=PROFILE_TIMEOUT_SECONDS,
        retry=RetryPolicy(total=2),
        ratelimit=RateLimit(max_calls=1, per_seconds=1.0),
    )


@dataclass(frozen=True, slots=True)
class ProfileServerConfig:
    """Address and token of the local profile server, if one is configured."""

    server: str = ""
    token: str = ""
    global_profile: str = ""
    resilience: ResilienceConfig = field(default_factory=_default_resilience)

    @property
    def enabled(self) -> bool:
        return bool(self.server)


def get_profile_server_config(*, resilience: ResilienceConfig | None = None) -> ProfileServerConfig:
    """Read the profile server settings; a configured server requires a token."""

    server = optional_env_var("EDGECONVERGE_PROFILE_SERVER") or ""
    token = require_env_vars([PROFILE_TOKEN_VAR])[PROFILE_TOKEN_VAR] if server else ""
    return ProfileServerConfig(
        server=server,
        token=token,
        global_profile=optional_env_var("EDGECONVERGE_GLOBAL_PROFILE") or "",
        resilience=resilience or _default_resilience(),
    )
