"""Router advertisement daemon (radvd) run once per listening interface."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar, Final

from edgeconverge.adapters.process import start_process, stop_process
from edgeconverge.domain.depgraph import BaseItem, Dependency
from edgeconverge.domain.reconciler import NotSupportedError

from .paths import config_path, pid_path

if TYPE_CHECKING:
    from uuid import UUID

    from edgeconverge.domain.depgraph import Item
    from edgeconverge.domain.reconciler import DoneCallback, OperationContext

    from .interface import NetworkIf

log = getLogger(__name__)

RADVD_TYPENAME: Final[str] = "radvd"
RADVD_START_TIMEOUT_SECONDS: Final[float] = 3.0
RADVD_STOP_TIMEOUT_SECONDS: Final[float] = 10.0

# Low preference so that an uplink router advertising a default route wins.
RADVD_CONFIG_TEMPLATE: Final[str] = """
# Automatically generated by edgeconverge
# Low preference to allow underlay to have high preference default
interface {if_name} {{
\tIgnoreIfMissing on;
\tAdvSendAdvert on;
\tMaxRtrAdvInterval 1800;
\tAdvManagedFlag on;
\tAdvLinkMTU 1280;
\tAdvDefaultPreference low;
\troute fd00::/8
\t{{
\t\tAdvRoutePreference high;
\t\tAdvRouteLifetime 1800;
\t}};
}};
"""

type StartProcess = Callable[..., Awaitable[int]]
type StopProcess = Callable[[Path, float], Awaitable[None]]


@dataclass(frozen=True, slots=True, kw_only=True)
class Radvd(BaseItem):
    """radvd instance serving one network instance on one interface.

    ``for_ni`` is part of equality so that a network instance replaced by
    another one on the same bridge restarts the daemon.
    """

    ITEM_TYPE: ClassVar[str] = RADVD_TYPENAME

    for_ni: UUID
    listen_if: NetworkIf

    @property
    def name(self) -> str:
        # At most one radvd may listen on a given interface.
        return self.listen_if.if_name

    @property
    def label(self) -> str:
        return f"radvd for {self.listen_if.if_name}"

    def dependencies(self) -> tuple[Dependency, ...]:
        return (
            Dependency(
                required=self.listen_if.item_ref,
                description="interface on which radvd listens must exist",
            ),
        )

    def __str__(self) -> str:
        return f"Radvd: {{NI: {self.for_ni}, listenIf: {self.listen_if.if_name}}}"


def render_radvd_config(if_name: str) -> str:
    return RADVD_CONFIG_TEMPLATE.format(if_name=if_name)


@dataclass(slots=True)
class RadvdConfigurator:
    """Starts and stops radvd; every change is applied as a recreate."""

    run_dir: Path
    start: StartProcess = field(default=start_process)
    stop: StopProcess = field(default=stop_process)
    start_timeout: float = RADVD_START_TIMEOUT_SECONDS
    stop_timeout: float = RADVD_STOP_TIMEOUT_SECONDS
    supports_modify: bool = field(default=False, init=False)
    _tasks: set[asyncio.Task[None]] = field(default_factory=set["asyncio.Task[None]"], init=False)

    async def create(self, ctx: OperationContext, item: Item) -> None:
        radvd = _as_radvd(item)
        self._write_config(radvd)
        done = ctx.continue_in_background()
        self._spawn(self._start_radvd(radvd.name), done, f"start {radvd.label}")

    async def modify(self, ctx: OperationContext, old_item: Item, new_item: Item) -> None:  # noqa: ARG002
        raise NotSupportedError("radvd cannot be reconfigured in place")

    async def delete(self, ctx: OperationContext, item: Item) -> None:
        radvd = _as_radvd(item)
        done = ctx.continue_in_background()
        self._spawn(self._stop_radvd(radvd.name), done, f"stop {radvd.label}")

    def needs_recreate(self, old_item: Item, new_item: Item) -> bool:  # noqa: ARG002
        return True

    def config_path(self, instance_name: str) -> Path:
        return config_path(self.run_dir, RADVD_TYPENAME, instance_name)

    def pid_path(self, instance_name: str) -> Path:
        return pid_path(self.run_dir, RADVD_TYPENAME, instance_name)

    def _write_config(self, radvd: Radvd) -> None:
        path = self.config_path(radvd.name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(render_radvd_config(radvd.listen_if.if_name), encoding="utf-8")
        except OSError as exc:
            log.error("Failed to write radvd config file %s: %s", path, exc)
            raise

    async def _start_radvd(self, instance_name: str) -> None:
        pid_file = self.pid_path(instance_name)
        args = (
            "radvd",
            "-u",
            "radvd",
            "-C",
            str(self.config_path(instance_name)),
            "-p",
            str(pid_file),
        )
        await self.start("nohup", args, pid_file, self.start_timeout, background=True)

    async def _stop_radvd(self, instance_name: str) -> None:
        await self.stop(self.pid_path(instance_name), self.stop_timeout)
        for path in (self.config_path(instance_name), self.pid_path(instance_name)):
            try:
                path.unlink()
            except OSError as exc:
                # The daemon is already gone; leftovers do not fail the deletion.
                log.warning("Failed to remove radvd artifact %s: %s", path, exc)

    def _spawn(self, work: Awaitable[None], done: DoneCallback, name: str) -> None:
        async def runner() -> None:
            try:
                await work
            except Exception as exc:  # noqa: BLE001
                log.error("radvd %s failed: %s", name, exc)
                done(exc)
            else:
                done(None)

        task = asyncio.create_task(runner(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def _as_radvd(item: Item) -> Radvd:
    if not isinstance(item, Radvd):
        raise TypeError(f"invalid item type {type(item).__name__}, expected Radvd")
    return item
