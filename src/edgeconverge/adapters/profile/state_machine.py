"""Tracks the effective device profile from global and local sources.

The current profile is the local profile when the local profile server
provides one, otherwise the global profile. Every change of the current
profile is handed to the publish callback exactly once.
"""

from __future__ import annotations

import asyncio
import inspect
import random
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .client import LocalProfileError, make_lps_base_url
from .schema import LocalProfile

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    type FetchLocalProfile = Callable[[str, str], Awaitable[LocalProfile]]
    type PublishProfile = Callable[[str], Awaitable[None] | None]

log = getLogger(__name__)

# Lower bound of the periodic fetch delay as a fraction of the interval.
FETCH_JITTER_FLOOR = 0.3


class ProfileStateMachine:
    def __init__(
        self,
        *,
        fetch: FetchLocalProfile,
        publish: PublishProfile,
        checkpoint: Path | None = None,
    ) -> None:
        self._fetch = fetch
        self._publish = publish
        self._checkpoint = checkpoint
        self._trigger = asyncio.Event()
        self.global_profile = ""
        self.server = ""
        self.token = ""
        self.local_profile = ""
        self.current_profile = ""

    def restore(self) -> None:
        """Start from the local profile saved by an earlier run, if any."""

        if self._checkpoint is None:
            return
        try:
            saved = LocalProfile.model_validate_json(self._checkpoint.read_bytes())
        except FileNotFoundError:
            return
        except (OSError, ValidationError) as exc:
            log.warning(
                "Ignoring unreadable local profile checkpoint %s: %s", self._checkpoint, exc
            )
            return
        log.info("Starting with saved local profile %r", saved.local_profile)
        self.local_profile = saved.local_profile

    async def update_config(self, global_profile: str, server: str, token: str) -> None:
        """Apply new controller configuration and re-evaluate without fetching.

        A changed server address schedules a fetch for the periodic task.
        """

        if self.global_profile != global_profile:
            log.info("Global profile changed from %r to %r", self.global_profile, global_profile)
            self.global_profile = global_profile
        self.token = token
        if self.server != server:
            log.info("Local profile server changed from %r to %r", self.server, server)
            self.server = server
            self.trigger()
        await self.run(skip_fetch=True)

    def trigger(self) -> None:
        self._trigger.set()

    async def run(self, *, skip_fetch: bool = False) -> str:
        """Evaluate the current profile once and publish it if it changed."""

        local_profile = await self._get_local_profile(skip_fetch=skip_fetch)
        if self.local_profile != local_profile:
            log.info("Local profile changed from %r to %r", self.local_profile, local_profile)
            self.local_profile = local_profile
        current_profile = self.local_profile or self.global_profile
        if self.current_profile != current_profile:
            log.info("Current profile changed from %r to %r", self.current_profile, current_profile)
            self.current_profile = current_profile
            result = self._publish(current_profile)
            if inspect.isawaitable(result):
                await result
        return self.current_profile

    async def run_periodically(self, interval: float) -> None:
        """Fetch on every trigger and on a jittered tick of at most ``interval`` seconds.

        Runs until cancelled.
        """

        while True:
            delay = random.uniform(interval * FETCH_JITTER_FLOOR, interval)  # noqa: S311
            try:
                await asyncio.wait_for(self._trigger.wait(), timeout=delay)
            except TimeoutError:
                pass
            self._trigger.clear()
            await self.run(skip_fetch=False)

    async def _get_local_profile(self, *, skip_fetch: bool) -> str:
        if not self.server:
            if self.local_profile:
                log.info("Clearing local profile checkpoint since no server is configured")
                self._clear_checkpoint()
            return ""
        if skip_fetch:
            return self.local_profile
        try:
            base_url = make_lps_base_url(self.server)
        except LocalProfileError as exc:
            log.error("Cannot build local profile server URL: %s", exc)
            return ""
        try:
            profile = await self._fetch(base_url, self.token)
        except LocalProfileError as exc:
            log.error("Fetching local profile failed: %s", exc)
            return self.local_profile
        self._save_checkpoint(profile)
        return profile.local_profile

    def _save_checkpoint(self, profile: LocalProfile) -> None:
        if self._checkpoint is None:
            return
        try:
            self._checkpoint.parent.mkdir(parents=True, exist_ok=True)
            self._checkpoint.write_text(profile.model_dump_json(by_alias=True), encoding="utf-8")
        except OSError as exc:
            log.error("Saving local profile checkpoint %s failed: %s", self._checkpoint, exc)

    def _clear_checkpoint(self) -> None:
        if self._checkpoint is None:
            return
        self._checkpoint.unlink(missing_ok=True)
