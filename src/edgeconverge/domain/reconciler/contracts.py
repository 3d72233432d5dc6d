"""Configurator contract and the operation records exchanged with it.

A configurator is a stateless strategy registered per item type. It applies
one operation at a time against the real system and never touches reconciler
state: completion is reported either by returning (synchronous) or through
the ``done`` callback obtained from ``OperationContext.continue_in_background``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from edgeconverge.domain.depgraph import Item, ItemRef


class OperationKind(StrEnum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class OperationStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True, kw_only=True, eq=False)
class Operation:
    """One create/modify/delete issued against a configurator."""

    kind: OperationKind
    ref: ItemRef
    old: Item | None = None
    new: Item | None = None
    status: OperationStatus = OperationStatus.PENDING
    error: BaseException | None = None
    background: bool = False

    @property
    def item(self) -> Item:
        item = self.new if self.new is not None else self.old
        if item is None:
            raise ValueError(f"Operation {self.kind} of {self.ref} carries no item")
        return item

    def __str__(self) -> str:
        return f"{self.kind} {self.ref}"


type DoneCallback = Callable[[BaseException | None], None]


class OperationContext:
    """Per-operation handle passed to configurator calls."""

    def __init__(self, operation: Operation, *, loop: asyncio.AbstractEventLoop) -> None:
        self._operation = operation
        self._loop = loop
        self._background: asyncio.Future[BaseException | None] | None = None

    @property
    def operation(self) -> Operation:
        return self._operation

    @property
    def background(self) -> asyncio.Future[BaseException | None] | None:
        return self._background

    def continue_in_background(self) -> DoneCallback:
        """Defer completion of this operation to a later ``done(error)`` call.

        The returned callback may be invoked from any thread. Only the first
        call counts.
        """

        if self._background is None:
            self._background = self._loop.create_future()
        future = self._background
        loop = self._loop

        def done(error: BaseException | None = None) -> None:
            loop.call_soon_threadsafe(_resolve, future, error)

        return done


def _resolve(future: asyncio.Future[BaseException | None], error: BaseException | None) -> None:
    if not future.done():
        future.set_result(error)


@runtime_checkable
class Configurator(Protocol):
    """Strategy applying items of one type to the real system.

    ``modify`` may raise ``NotSupportedError``; a configurator can also set
    ``supports_modify = False`` so that every change is planned as a
    recreate. ``needs_recreate`` must be a pure predicate.
    """

    async def create(self, ctx: OperationContext, item: Item) -> None: ...

    async def modify(self, ctx: OperationContext, old_item: Item, new_item: Item) -> None: ...

    async def delete(self, ctx: OperationContext, item: Item) -> None: ...

    def needs_recreate(self, old_item: Item, new_item: Item) -> bool: ...
