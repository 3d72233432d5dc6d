"""Typed, named, interdependent items and the graph that holds them.

Both sides of reconciliation use the same container:
1) the intended graph, rebuilt by the caller for every pass
2) the current graph, owned and mutated only by the reconciler
"""

from __future__ import annotations

from .errors import (
    CycleDetectedError,
    DependencyGraphError,
    DependencyUnsatisfiedError,
    DuplicateItemError,
    HasDependentsError,
    ItemNotFoundError,
)
from .graph import DependencyGraph
from .item import BaseItem, Dependency, Item, ItemRef, item_ref

__all__ = [
    "BaseItem",
    "CycleDetectedError",
    "Dependency",
    "DependencyGraph",
    "DependencyGraphError",
    "DependencyUnsatisfiedError",
    "DuplicateItemError",
    "HasDependentsError",
    "Item",
    "ItemNotFoundError",
    "ItemRef",
    "item_ref",
]
