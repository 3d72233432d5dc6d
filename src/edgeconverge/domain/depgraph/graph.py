"""Dependency graph container used by the reconciler.

The graph maps ``ItemRef`` to items and derives edges lazily from each
item's declared dependencies:
- a dependency pointing at an absent item is not an error while building;
  ``unsatisfied_dependencies`` surfaces it when the caller needs it
- ordering only considers edges between items present in the graph
- every ordering call detects cycles and names one offending path
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import CycleDetectedError, DuplicateItemError, HasDependentsError, ItemNotFoundError
from .item import item_ref

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .item import Dependency, Item, ItemRef


@dataclass(slots=True)
class DependencyGraph:
    """Items keyed by identity plus the dependency edges they declare."""

    _items: dict[ItemRef, Item] = field(default_factory=dict["ItemRef", "Item"], repr=False)

    @classmethod
    def from_items(cls, items: Iterable[Item]) -> DependencyGraph:
        graph = cls()
        for item in items:
            graph.insert(item)
        return graph

    def __contains__(self, ref: object) -> bool:
        return ref in self._items

    def __iter__(self) -> Iterator[Item]:
        return iter(tuple(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    @property
    def refs(self) -> tuple[ItemRef, ...]:
        return tuple(self._items)

    def insert(self, item: Item) -> None:
        ref = item_ref(item)
        if ref in self._items:
            raise DuplicateItemError(ref)
        self._items[ref] = item

    def put(self, item: Item) -> None:
        """Insert ``item`` or replace the value stored under its identity."""

        self._items[item_ref(item)] = item

    def remove(self, ref: ItemRef) -> Item:
        if ref not in self._items:
            raise ItemNotFoundError(ref)
        dependents = self.dependents(ref)
        if dependents:
            raise HasDependentsError(ref, dependents)
        return self._items.pop(ref)

    def discard(self, ref: ItemRef) -> Item | None:
        """Drop ``ref`` if present, leaving edges of its dependents dangling.

        For items already gone from the system.
        """

        return self._items.pop(ref, None)

    def get(self, ref: ItemRef) -> Item | None:
        return self._items.get(ref)

    def require(self, ref: ItemRef) -> Item:
        item = self._items.get(ref)
        if item is None:
            raise ItemNotFoundError(ref)
        return item

    def dependents(self, ref: ItemRef) -> tuple[ItemRef, ...]:
        """Return refs of present items that declare a dependency on ``ref``."""

        return tuple(
            other_ref
            for other_ref, item in self._items.items()
            if other_ref != ref and any(dep.required == ref for dep in item.dependencies())
        )

    def unsatisfied_dependencies(self, item: Item) -> tuple[Dependency, ...]:
        return tuple(dep for dep in item.dependencies() if dep.required not in self._items)

    def copy(self) -> DependencyGraph:
        return DependencyGraph(_items=dict(self._items))

    def validate(self) -> None:
        """Raise ``CycleDetectedError`` if the graph is not a DAG."""

        self.topological_order()

    def topological_order(self) -> tuple[Item, ...]:
        """Order items so that every item follows all items it depends on."""

        edges = self._edges()
        dependents_of: dict[ItemRef, list[ItemRef]] = {ref: [] for ref in self._items}
        for ref, required in edges.items():
            for dep_ref in required:
                dependents_of[dep_ref].append(ref)

        remaining = {ref: set(required) for ref, required in edges.items()}
        ready = deque(ref for ref, required in remaining.items() if not required)
        ordered: list[ItemRef] = []
        while ready:
            ref = ready.popleft()
            ordered.append(ref)
            for dependent in dependents_of[ref]:
                waiting = remaining[dependent]
                waiting.discard(ref)
                if not waiting:
                    ready.append(dependent)

        if len(ordered) < len(self._items):
            done = set(ordered)
            unordered = {ref for ref in self._items if ref not in done}
            raise CycleDetectedError(_find_cycle(edges, unordered))
        return tuple(self._items[ref] for ref in ordered)

    def reverse_topological_order(self) -> tuple[Item, ...]:
        """Order items so that dependents come before their dependencies."""

        return tuple(reversed(self.topological_order()))

    def _edges(self) -> dict[ItemRef, tuple[ItemRef, ...]]:
        edges: dict[ItemRef, tuple[ItemRef, ...]] = {}
        for ref, item in self._items.items():
            required = dict.fromkeys(
                dep.required for dep in item.dependencies() if dep.required in self._items
            )
            edges[ref] = tuple(required)
        return edges


def _find_cycle(
    edges: dict[ItemRef, tuple[ItemRef, ...]],
    candidates: set[ItemRef],
) -> list[ItemRef]:
    visiting: set[ItemRef] = set()
    finished: set[ItemRef] = set()
    stack: list[ItemRef] = []

    def visit(ref: ItemRef) -> list[ItemRef] | None:
        visiting.add(ref)
        stack.append(ref)
        for dep_ref in edges[ref]:
            if dep_ref not in candidates or dep_ref in finished:
                continue
            if dep_ref in visiting:
                return [*stack[stack.index(dep_ref) :], dep_ref]
            found = visit(dep_ref)
            if found is not None:
                return found
        stack.pop()
        visiting.discard(ref)
        finished.add(ref)
        return None

    for ref in sorted(candidates):
        if ref in finished:
            continue
        cycle = visit(ref)
        if cycle is not None:
            return cycle
    # Every unordered item either sits on a cycle or depends on one.
    raise AssertionError("unordered items without a cycle")
