"""Item primitives for declarative system state.

An item is an immutable value describing one piece of desired or existing
state (an interface, a daemon instance, a route). Identity is the pair
``(item_type, name)``; everything else is payload compared by ``equal``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True, order=True)
class ItemRef:
    """Global identity key of an item."""

    item_type: str
    name: str

    def __str__(self) -> str:
        return f"{self.item_type}/{self.name}"


@dataclass(frozen=True, slots=True)
class Dependency:
    """Requirement that another item exists before this one is created."""

    required: ItemRef
    description: str = ""


@runtime_checkable
class Item(Protocol):
    """Structural contract implemented by every graph item."""

    @property
    def item_type(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def label(self) -> str: ...

    @property
    def external(self) -> bool: ...

    def dependencies(self) -> tuple[Dependency, ...]: ...

    def equal(self, other: Item) -> bool: ...


@dataclass(frozen=True, slots=True, kw_only=True)
class BaseItem:
    """Convenience base for dataclass items.

    Subclasses set ``ITEM_TYPE`` and provide ``name`` as a property. Equality
    compares the dataclass fields, so two values describing the same
    configuration are treated as a no-op by the reconciler. Fields must not
    shadow the properties defined here.
    """

    ITEM_TYPE: ClassVar[str]

    @property
    def item_type(self) -> str:
        return self.ITEM_TYPE

    @property
    def label(self) -> str:
        return f"{self.item_type}/{self.name}"

    @property
    def external(self) -> bool:
        return False

    def dependencies(self) -> tuple[Dependency, ...]:
        return ()

    def equal(self, other: Item) -> bool:
        return self == other


def item_ref(item: Item) -> ItemRef:
    return ItemRef(item_type=item.item_type, name=item.name)
