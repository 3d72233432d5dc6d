"""Public interface for the local profile server adapter."""

from __future__ import annotations

from .client import (
    DEFAULT_LPS_PORT,
    PROFILE_URL_PATH,
    LocalProfileClient,
    LocalProfileError,
    make_lps_base_url,
)
from .schema import LocalProfile
from .state_machine import ProfileStateMachine

__all__ = [
    "DEFAULT_LPS_PORT",
    "PROFILE_URL_PATH",
    "LocalProfile",
    "LocalProfileClient",
    "LocalProfileError",
    "ProfileStateMachine",
    "make_lps_base_url",
]
