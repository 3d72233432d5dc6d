"""Network interfaces managed with ``ip link``."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, ClassVar, Final

from edgeconverge.adapters.process import run_command
from edgeconverge.domain.depgraph import BaseItem, ItemRef

if TYPE_CHECKING:
    from edgeconverge.domain.depgraph import Item
    from edgeconverge.domain.reconciler import OperationContext

log = getLogger(__name__)

INTERFACE_TYPENAME: Final[str] = "interface"
IP_COMMAND: Final[str] = "ip"

type CommandRunner = Callable[[str, Sequence[str]], Awaitable[str]]


@dataclass(frozen=True, slots=True)
class NetworkIf:
    """Reference to the interface an item is attached to."""

    if_name: str
    item_ref: ItemRef

    @classmethod
    def for_interface(cls, if_name: str) -> NetworkIf:
        return cls(if_name=if_name, item_ref=ItemRef(INTERFACE_TYPENAME, if_name))


@dataclass(frozen=True, slots=True, kw_only=True)
class Interface(BaseItem):
    """Link-layer interface.

    ``discovered`` interfaces exist outside of the agent's control (physical
    ports, links created by another agent): they satisfy dependencies but are
    never created, modified or deleted.
    """

    ITEM_TYPE: ClassVar[str] = INTERFACE_TYPENAME

    if_name: str
    kind: str = "dummy"
    mtu: int | None = None
    discovered: bool = False

    @property
    def name(self) -> str:
        return self.if_name

    @property
    def external(self) -> bool:
        return self.discovered

    def __str__(self) -> str:
        return f"Interface: {{name: {self.if_name}, kind: {self.kind}, mtu: {self.mtu}}}"


@dataclass(slots=True)
class InterfaceConfigurator:
    """Creates, re-configures and removes links with iproute2."""

    run: CommandRunner = field(default=run_command)

    async def create(self, ctx: OperationContext, item: Item) -> None:  # noqa: ARG002
        interface = _as_interface(item)
        await self._ip("link", "add", interface.if_name, "type", interface.kind)
        if interface.mtu is not None:
            await self._ip("link", "set", interface.if_name, "mtu", str(interface.mtu))
        await self._ip("link", "set", interface.if_name, "up")

    async def modify(self, ctx: OperationContext, old_item: Item, new_item: Item) -> None:  # noqa: ARG002
        interface = _as_interface(new_item)
        if interface.mtu is not None:
            await self._ip("link", "set", interface.if_name, "mtu", str(interface.mtu))

    async def delete(self, ctx: OperationContext, item: Item) -> None:  # noqa: ARG002
        interface = _as_interface(item)
        await self._ip("link", "del", interface.if_name)

    def needs_recreate(self, old_item: Item, new_item: Item) -> bool:
        old = _as_interface(old_item)
        new = _as_interface(new_item)
        # A link cannot change its kind in place; dropping the MTU back to the
        # kernel default is only possible by re-adding the link.
        return old.kind != new.kind or (old.mtu is not None and new.mtu is None)

    async def _ip(self, *args: str) -> None:
        await self.run(IP_COMMAND, args)


def _as_interface(item: Item) -> Interface:
    if not isinstance(item, Interface):
        raise TypeError(f"invalid item type {type(item).__name__}, expected Interface")
    return item
