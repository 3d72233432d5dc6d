"""Locations of per-item artifacts inside the agent's run directory."""

from __future__ import annotations

from pathlib import Path


def artifact_path(run_dir: Path, item_type: str, name: str, suffix: str) -> Path:
    """Return ``<run_dir>/<item_type>.<name>.<suffix>``."""

    return run_dir / f"{item_type}.{name}.{suffix}"


def config_path(run_dir: Path, item_type: str, name: str) -> Path:
    return artifact_path(run_dir, item_type, name, "conf")


def pid_path(run_dir: Path, item_type: str, name: str) -> Path:
    return artifact_path(run_dir, item_type, name, "pid")
