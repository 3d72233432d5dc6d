"""Items and configurators for the network primitives the agent manages."""

from __future__ import annotations

from .interface import (
    INTERFACE_TYPENAME,
    CommandRunner,
    Interface,
    InterfaceConfigurator,
    NetworkIf,
)
from .paths import artifact_path, config_path, pid_path
from .radvd import RADVD_TYPENAME, Radvd, RadvdConfigurator, render_radvd_config

__all__ = [
    "INTERFACE_TYPENAME",
    "RADVD_TYPENAME",
    "CommandRunner",
    "Interface",
    "InterfaceConfigurator",
    "NetworkIf",
    "Radvd",
    "RadvdConfigurator",
    "artifact_path",
    "config_path",
    "pid_path",
    "render_radvd_config",
]
