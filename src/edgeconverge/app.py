"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
import functools
import random
from logging import getLogger
from typing import TYPE_CHECKING

from edgeconverge.adapters.genericitems import (
    INTERFACE_TYPENAME,
    RADVD_TYPENAME,
    InterfaceConfigurator,
    RadvdConfigurator,
)
from edgeconverge.adapters.profile import LocalProfileClient, ProfileStateMachine
from edgeconverge.adapters.state_file import DeclaredStateError, load_intended_graph
from edgeconverge.config import get_profile_server_config, get_runtime_config
from edgeconverge.domain.depgraph import CycleDetectedError
from edgeconverge.domain.reconciler import ConfiguratorRegistry, ItemStatus, Reconciler

if TYPE_CHECKING:
    from pathlib import Path

    from edgeconverge.config import ProfileServerConfig, RuntimeConfig
    from edgeconverge.domain.depgraph import DependencyGraph
    from edgeconverge.domain.reconciler import ReconciliationReport

log = getLogger(__name__)

DEFAULT_MAX_PASSES = 10
PROFILE_CHECKPOINT_NAME = "lastlocalprofile"
CURRENT_PROFILE_NAME = "currentprofile"


def build_registry(runtime: RuntimeConfig) -> ConfiguratorRegistry:
    """Register the configurators for every item type the agent manages."""

    registry = ConfiguratorRegistry()
    registry.register(INTERFACE_TYPENAME, InterfaceConfigurator())
    registry.register(RADVD_TYPENAME, RadvdConfigurator(run_dir=runtime.ensure_run_dir()))
    return registry


async def converge(
    reconciler: Reconciler,
    intended: DependencyGraph,
    *,
    max_passes: int = DEFAULT_MAX_PASSES,
) -> ReconciliationReport:
    """Reconcile repeatedly until nothing is left running or waiting to be resumed.

    Stops after ``max_passes`` passes and returns the report of the last one.
    """

    if max_passes < 1:
        raise ValueError("max_passes must be at least 1")
    report = await reconciler.reconcile(intended)
    log_report(report, pass_number=1)
    passes = 1
    while passes < max_passes and (reconciler.in_progress or reconciler.resume_requested):
        await reconciler.wait_for_async()
        passes += 1
        report = await reconciler.reconcile(intended)
        log_report(report, pass_number=passes)
    if reconciler.in_progress:
        log.warning(
            "Pass limit of %d reached with %d operations still running",
            max_passes,
            len(reconciler.in_progress),
        )
    return report


def apply_declared_state(
    state_path: Path,
    *,
    runtime: RuntimeConfig | None = None,
    registry: ConfiguratorRegistry | None = None,
    max_passes: int = DEFAULT_MAX_PASSES,
) -> ReconciliationReport:
    """Converge the system once towards the state declared in ``state_path``."""

    effective_runtime = runtime or get_runtime_config()
    intended = load_intended_graph(state_path)
    effective_registry = registry or build_registry(effective_runtime)
    log.info("Applying %s: %d items declared", state_path, len(intended))

    async def run() -> ReconciliationReport:
        reconciler = Reconciler(effective_registry)
        report = await converge(reconciler, intended, max_passes=max_passes)
        # Background operations must not be abandoned when the loop closes.
        await reconciler.wait_idle()
        return report

    return asyncio.run(run())


def watch_declared_state(
    state_path: Path,
    *,
    runtime: RuntimeConfig | None = None,
    registry: ConfiguratorRegistry | None = None,
    profile: ProfileServerConfig | None = None,
    max_iterations: int | None = None,
) -> None:
    """Keep the system converged towards ``state_path`` until interrupted.

    The file is re-read on every tick; an unreadable or invalid file keeps the
    last valid intent in force.
    """

    effective_runtime = runtime or get_runtime_config()
    effective_registry = registry or build_registry(effective_runtime)
    effective_profile = profile or get_profile_server_config()
    asyncio.run(
        _watch(
            state_path,
            runtime=effective_runtime,
            registry=effective_registry,
            profile=effective_profile,
            max_iterations=max_iterations,
        )
    )


async def _watch(
    state_path: Path,
    *,
    runtime: RuntimeConfig,
    registry: ConfiguratorRegistry,
    profile: ProfileServerConfig,
    max_iterations: int | None,
) -> None:
    reconciler = Reconciler(registry)
    tracks_profile = profile.enabled or bool(profile.global_profile)
    profile_task = await _start_profile_tracking(profile, runtime) if tracks_profile else None
    intended: DependencyGraph | None = None
    iteration = 0
    log.info("Watching %s every %.0fs", state_path, runtime.reconcile_interval_seconds)
    try:
        while max_iterations is None or iteration < max_iterations:
            iteration += 1
            try:
                intended = load_intended_graph(state_path)
            except DeclaredStateError as exc:
                log.error("%s; keeping the previous declared state", exc)
            if intended is not None:
                try:
                    report = await reconciler.reconcile(intended)
                except CycleDetectedError as exc:
                    log.error("Declared state rejected: %s", exc)
                else:
                    log_report(report, pass_number=iteration)
            if max_iterations is not None and iteration >= max_iterations:
                break
            delay = random.uniform(*runtime.tick_range)  # noqa: S311
            try:
                await asyncio.wait_for(reconciler.wait_for_async(), timeout=delay)
            except TimeoutError:
                log.debug("Periodic reconciliation tick")
        await reconciler.wait_idle()
    finally:
        if profile_task is not None:
            profile_task.cancel()


async def _start_profile_tracking(
    profile: ProfileServerConfig,
    runtime: RuntimeConfig,
) -> asyncio.Task[None]:
    run_dir = runtime.ensure_run_dir()
    client = LocalProfileClient(config=profile)
    machine = ProfileStateMachine(
        fetch=client.fetch,
        publish=functools.partial(publish_profile, run_dir / CURRENT_PROFILE_NAME),
        checkpoint=run_dir / PROFILE_CHECKPOINT_NAME,
    )
    machine.restore()
    await machine.update_config(profile.global_profile, profile.server, profile.token)
    return asyncio.create_task(
        machine.run_periodically(runtime.reconcile_interval_seconds),
        name="local profile",
    )


def publish_profile(path: Path, current_profile: str) -> None:
    """Expose the current profile to other agents on the node through ``path``."""

    log.info("Current profile is now %r", current_profile)
    staging = path.with_name(f".{path.name}.tmp")
    try:
        staging.write_text(current_profile, encoding="utf-8")
        staging.replace(path)
    except OSError as exc:
        log.error("Publishing current profile to %s failed: %s", path, exc)


def log_report(report: ReconciliationReport, *, pass_number: int) -> None:
    summary = ", ".join(f"{status}={count}" for status, count in report.summary().items())
    log.info(
        "Pass %d: %s; %d background completions, %d still running",
        pass_number,
        summary or "nothing to do",
        len(report.async_completions),
        len(report.in_progress),
    )
    for outcome in report.with_status(ItemStatus.FAILED, ItemStatus.BLOCKED):
        detail = outcome.error or outcome.reason
        log.warning("%s %s: %s", outcome.ref, outcome.status, detail)
