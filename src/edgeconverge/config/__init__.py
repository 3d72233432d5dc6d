"""Application configuration helpers."""

from __future__ import annotations

from .env import env_float, optional_env_var, require_env_vars
from .errors import ConfigurationError, InvalidConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .profile import ProfileServerConfig, get_profile_server_config
from .runtime import RuntimeConfig, get_runtime_config

__all__ = [
    "ConfigurationError",
    "InvalidConfigurationError",
    "MissingConfigurationError",
    "ProfileServerConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "RuntimeConfig",
    "configure_logging",
    "env_float",
    "get_profile_server_config",
    "get_runtime_config",
    "optional_env_var",
    "require_env_vars",
]
