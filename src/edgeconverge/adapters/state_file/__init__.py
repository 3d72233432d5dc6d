"""Public interface for the declared-state file adapter."""

from __future__ import annotations

from .schema import DeclaredState, InterfaceSpec, RadvdSpec
from .translator import (
    DeclaredStateError,
    build_intended_graph,
    load_declared_state,
    load_intended_graph,
    parse_declared_state,
)

__all__ = [
    "DeclaredState",
    "DeclaredStateError",
    "InterfaceSpec",
    "RadvdSpec",
    "build_intended_graph",
    "load_declared_state",
    "load_intended_graph",
    "parse_declared_state",
]
