"""Reusable fake items and configurators for reconciler tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from edgeconverge.domain.depgraph import Dependency, Item, ItemRef
from edgeconverge.domain.reconciler import DoneCallback, NotSupportedError, OperationContext

type Journal = list[tuple[str, str]]


@dataclass(frozen=True, slots=True)
class FakeItem:
    """Item implementing the protocol structurally, without ``BaseItem``."""

    kind: str
    item_name: str
    value: str = ""
    requires: tuple[ItemRef, ...] = ()
    is_external: bool = False

    @property
    def item_type(self) -> str:
        return self.kind

    @property
    def name(self) -> str:
        return self.item_name

    @property
    def label(self) -> str:
        return f"fake {self.kind} {self.item_name}"

    @property
    def external(self) -> bool:
        return self.is_external

    def dependencies(self) -> tuple[Dependency, ...]:
        return tuple(
            Dependency(required=ref, description=f"{self.item_name} needs {ref.name}")
            for ref in self.requires
        )

    def equal(self, other: Item) -> bool:
        return self == other


def make_item(
    name: str,
    *,
    kind: str = "fake",
    value: str = "",
    requires: tuple[str | ItemRef, ...] = (),
    external: bool = False,
) -> FakeItem:
    refs = tuple(dep if isinstance(dep, ItemRef) else ItemRef(kind, dep) for dep in requires)
    return FakeItem(kind=kind, item_name=name, value=value, requires=refs, is_external=external)


def ref(name: str, kind: str = "fake") -> ItemRef:
    return ItemRef(kind, name)


@dataclass
class RecordingConfigurator:
    """In-memory configurator that records every call in a shared journal.

    ``fail`` lists ``(operation, name)`` pairs that raise; ``background``
    lists operations completed only once the test calls ``complete``.
    """

    journal: Journal = field(default_factory=list["tuple[str, str]"])
    fail: set[tuple[str, str]] = field(default_factory=set["tuple[str, str]"])
    background: set[tuple[str, str]] = field(default_factory=set["tuple[str, str]"])
    recreate_on_change: bool = False
    modify_not_supported: bool = False
    delay: float = 0.0
    active: int = 0
    max_active: int = 0
    pending: dict[tuple[str, str], DoneCallback] = field(
        default_factory=dict["tuple[str, str]", "DoneCallback"]
    )

    async def create(self, ctx: OperationContext, item: Item) -> None:
        await self._perform(ctx, "create", item.name)

    async def modify(self, ctx: OperationContext, old_item: Item, new_item: Item) -> None:
        if self.modify_not_supported:
            raise NotSupportedError(f"cannot modify {old_item.name}")
        await self._perform(ctx, "modify", new_item.name)

    async def delete(self, ctx: OperationContext, item: Item) -> None:
        await self._perform(ctx, "delete", item.name)

    def needs_recreate(self, old_item: Item, new_item: Item) -> bool:  # noqa: ARG002
        return self.recreate_on_change

    def complete(self, operation: str, name: str, error: BaseException | None = None) -> None:
        done = self.pending.pop((operation, name))
        done(error)

    def calls(self, operation: str) -> list[str]:
        return [name for op, name in self.journal if op == operation]

    async def _perform(self, ctx: OperationContext, operation: str, name: str) -> None:
        self.journal.append((operation, name))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        if (operation, name) in self.fail:
            raise RuntimeError(f"{operation} {name} exploded")
        if (operation, name) in self.background:
            self.pending[(operation, name)] = ctx.continue_in_background()
