"""Translate a declared-state document into the intended item graph."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from edgeconverge.adapters.genericitems import Interface, NetworkIf, Radvd
from edgeconverge.domain.depgraph import DependencyGraph, DuplicateItemError

from .schema import DeclaredState

if TYPE_CHECKING:
    from pathlib import Path

    from edgeconverge.domain.depgraph import Item

    from .schema import InterfaceSpec, RadvdSpec

log = getLogger(__name__)


class DeclaredStateError(RuntimeError):
    """Raised when the declared-state document cannot be read or is invalid."""


def parse_declared_state(raw: str | bytes) -> DeclaredState:
    try:
        return DeclaredState.model_validate_json(raw)
    except ValidationError as exc:
        raise DeclaredStateError(f"Invalid declared state: {exc}") from exc


def load_declared_state(path: Path) -> DeclaredState:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise DeclaredStateError(f"Cannot read declared state {path}: {exc}") from exc
    return parse_declared_state(raw)


def translate_interface(spec: InterfaceSpec) -> Interface:
    return Interface(if_name=spec.name, kind=spec.kind, mtu=spec.mtu, discovered=spec.external)


def translate_radvd(spec: RadvdSpec) -> Radvd:
    return Radvd(for_ni=spec.network_instance, listen_if=NetworkIf.for_interface(spec.listen_if))


def build_intended_graph(state: DeclaredState) -> DependencyGraph:
    """Build the intended graph; a second item with the same identity is an error."""

    items: list[Item] = [translate_interface(spec) for spec in state.interfaces]
    items.extend(translate_radvd(spec) for spec in state.radvd)
    graph = DependencyGraph()
    for item in items:
        try:
            graph.insert(item)
        except DuplicateItemError as exc:
            raise DeclaredStateError(f"Declared state lists {exc.ref} more than once") from exc
    log.debug("Declared state translated into %d items", len(graph))
    return graph


def load_intended_graph(path: Path) -> DependencyGraph:
    return build_intended_graph(load_declared_state(path))
