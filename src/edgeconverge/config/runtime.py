"""Agent runtime settings: where artifacts live and how often to reconcile."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import env_float, optional_env_var

DEFAULT_RUN_DIR: Final[str] = "/run/edgeconverge"
DEFAULT_RECONCILE_INTERVAL_SECONDS: Final[float] = 60.0
# Lower bound of the jittered tick as a fraction of the interval.
RECONCILE_JITTER_FLOOR: Final[float] = 0.3


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    run_dir: Path
    reconcile_interval_seconds: float = DEFAULT_RECONCILE_INTERVAL_SECONDS

    def resolve_run_dir(self) -> Path:
        return self.run_dir.expanduser().resolve()

    def ensure_run_dir(self) -> Path:
        run_dir = self.resolve_run_dir()
        run_dir.mkdir(parents=True, exist_ok=True)
        return run_dir

    @property
    def tick_range(self) -> tuple[float, float]:
        upper = self.reconcile_interval_seconds
        return upper * RECONCILE_JITTER_FLOOR, upper


def get_runtime_config() -> RuntimeConfig:
    run_dir = optional_env_var("EDGECONVERGE_RUN_DIR") or DEFAULT_RUN_DIR
    interval = env_float(
        "EDGECONVERGE_RECONCILE_INTERVAL",
        DEFAULT_RECONCILE_INTERVAL_SECONDS,
        minimum=1.0,
    )
    return RuntimeConfig(run_dir=Path(run_dir), reconcile_interval_seconds=interval)
