"""Dependency graph error definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .item import Dependency, ItemRef


class DependencyGraphError(RuntimeError):
    """Base class for graph construction and ordering errors."""


class DuplicateItemError(DependencyGraphError):
    """Raised when an item with the same identity is already present."""

    def __init__(self, ref: ItemRef) -> None:
        super().__init__(f"Item already present in graph: {ref}")
        self.ref = ref


class ItemNotFoundError(DependencyGraphError):
    """Raised when an item is looked up or removed but is absent."""

    def __init__(self, ref: ItemRef) -> None:
        super().__init__(f"Item not found in graph: {ref}")
        self.ref = ref


class HasDependentsError(DependencyGraphError):
    """Raised when removing an item that other items still require."""

    def __init__(self, ref: ItemRef, dependents: Sequence[ItemRef]) -> None:
        listed = ", ".join(str(dependent) for dependent in dependents)
        super().__init__(f"Item {ref} is still required by: {listed}")
        self.ref = ref
        self.dependents = tuple(dependents)


class DependencyUnsatisfiedError(DependencyGraphError):
    """Raised when an item requires something that is neither present nor external."""

    def __init__(self, ref: ItemRef, missing: Sequence[Dependency]) -> None:
        listed = "; ".join(f"{dep.required} ({dep.description})" for dep in missing)
        super().__init__(f"Unsatisfied dependencies for {ref}: {listed}")
        self.ref = ref
        self.missing = tuple(missing)


class CycleDetectedError(DependencyGraphError):
    """Raised when the graph is not a DAG; ``path`` names one offending cycle."""

    def __init__(self, path: Sequence[ItemRef]) -> None:
        rendered = " -> ".join(str(ref) for ref in path)
        super().__init__(f"Dependency cycle detected: {rendered}")
        self.path = tuple(path)
