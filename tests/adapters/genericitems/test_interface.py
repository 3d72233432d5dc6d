from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from edgeconverge.adapters.genericitems import (
    INTERFACE_TYPENAME,
    Interface,
    InterfaceConfigurator,
    NetworkIf,
)
from edgeconverge.domain.depgraph import ItemRef

if TYPE_CHECKING:
    from collections.abc import Sequence

    from edgeconverge.domain.reconciler import OperationContext


class _RecordingRunner:
    def __init__(self) -> None:
        self.commands: list[tuple[str, ...]] = []

    async def __call__(self, cmd: str, args: Sequence[str]) -> str:
        self.commands.append((cmd, *args))
        return ""


def _ctx() -> OperationContext:
    return None  # type: ignore[return-value]


def test_interface_identity_and_external_flag() -> None:
    discovered = Interface(if_name="eth0", kind="physical", discovered=True)
    owned = Interface(if_name="bn1", kind="bridge", mtu=1500)

    assert discovered.item_type == INTERFACE_TYPENAME
    assert discovered.name == "eth0"
    assert discovered.external
    assert not owned.external
    assert owned.label == "interface/bn1"
    assert owned.dependencies() == ()
    assert NetworkIf.for_interface("bn1").item_ref == ItemRef("interface", "bn1")


def test_configurator_drives_ip_link() -> None:
    runner = _RecordingRunner()
    configurator = InterfaceConfigurator(run=runner)
    old = Interface(if_name="bn1", kind="bridge", mtu=1500)
    new = Interface(if_name="bn1", kind="bridge", mtu=9000)

    async def scenario() -> None:
        await configurator.create(_ctx(), old)
        await configurator.modify(_ctx(), old, new)
        await configurator.delete(_ctx(), new)

    asyncio.run(scenario())

    assert runner.commands == [
        ("ip", "link", "add", "bn1", "type", "bridge"),
        ("ip", "link", "set", "bn1", "mtu", "1500"),
        ("ip", "link", "set", "bn1", "up"),
        ("ip", "link", "set", "bn1", "mtu", "9000"),
        ("ip", "link", "del", "bn1"),
    ]


def test_kind_change_needs_recreate_but_mtu_change_does_not() -> None:
    configurator = InterfaceConfigurator(run=_RecordingRunner())
    bridge = Interface(if_name="bn1", kind="bridge", mtu=1500)

    assert not configurator.needs_recreate(bridge, Interface(if_name="bn1", kind="bridge", mtu=9000))
    assert configurator.needs_recreate(bridge, Interface(if_name="bn1", kind="dummy", mtu=1500))
    assert configurator.needs_recreate(bridge, Interface(if_name="bn1", kind="bridge"))


def test_configurator_rejects_foreign_items() -> None:
    configurator = InterfaceConfigurator(run=_RecordingRunner())

    with pytest.raises(TypeError, match="expected Interface"):
        asyncio.run(configurator.delete(_ctx(), object()))  # type: ignore[arg-type]
