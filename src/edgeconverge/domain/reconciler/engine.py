"""Reconciliation engine converging the current graph to an intended graph.

One pass has two steps:
1) diff-and-plan, serialized across passes under ``_plan_lock``
2) execution, which fans out one task per item that needs an operation

Execution tasks synchronize on per-item futures instead of polling: a
deletion waits for the deletion of its dependents, a creation or modification
waits for its dependencies. Configurators that continue in background are
tracked by watcher tasks owned by the engine; their completion updates the
current graph under the same lock as planning and sets ``resume_requested``
so that the caller runs another pass for whatever was waiting on them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING

from edgeconverge.domain.depgraph import DependencyGraph, item_ref

from .contracts import Operation, OperationContext, OperationKind, OperationStatus
from .errors import ConfiguratorError, ConfiguratorNotFoundError, NotSupportedError
from .plan import ActionKind, build_plan
from .report import ItemOutcome, ItemStatus, ReconciliationReport

if TYPE_CHECKING:
    from collections.abc import Iterable

    from edgeconverge.domain.depgraph import Item, ItemRef

    from .contracts import Configurator
    from .plan import PlannedAction, ReconciliationPlan
    from .registry import ConfiguratorRegistry

log = getLogger(__name__)

_COMPLETED_STATUS = {
    OperationKind.CREATE: ItemStatus.CREATED,
    OperationKind.MODIFY: ItemStatus.MODIFIED,
    OperationKind.DELETE: ItemStatus.DELETED,
}
_BLOCKING_STATUSES = frozenset({ItemStatus.FAILED, ItemStatus.BLOCKED})


@dataclass(slots=True, eq=False)
class _InFlight:
    """Marker for an item whose operation has been planned and not finished.

    ``target`` is the value the item will hold once the operation completes
    (``None`` for a deletion). ``deferred`` is set when a later pass left a
    change queued behind it; finishing then requests a resume.
    """

    target: Item | None
    done: asyncio.Event = field(default_factory=asyncio.Event)
    deferred: bool = False


class Reconciler:
    """Owns the current graph and drives configurators towards intent."""

    def __init__(
        self,
        registry: ConfiguratorRegistry,
        *,
        current: DependencyGraph | None = None,
    ) -> None:
        self._registry = registry
        self._current = current.copy() if current is not None else DependencyGraph()
        self._in_flight: dict[ItemRef, _InFlight] = {}
        self._recreate_only: set[str] = set()
        self._async_completions: list[Operation] = []
        self._plan_lock = asyncio.Lock()
        self._resume = asyncio.Event()
        self._watchers: set[asyncio.Task[None]] = set()

    @property
    def current(self) -> DependencyGraph:
        """Snapshot of what has actually been applied."""

        return self._current.copy()

    @property
    def in_progress(self) -> frozenset[ItemRef]:
        return frozenset(self._in_flight)

    @property
    def resume_requested(self) -> bool:
        return self._resume.is_set()

    async def wait_for_async(self) -> None:
        """Block until a background operation completes or a pass asks to be rerun."""

        await self._resume.wait()

    async def wait_idle(self) -> None:
        """Block until no operation is planned or running."""

        while self._in_flight:
            entries = tuple(self._in_flight.values())
            await asyncio.gather(*(entry.done.wait() for entry in entries))

    async def reconcile(self, intended: DependencyGraph) -> ReconciliationReport:
        """Run one pass converging the current graph towards ``intended``.

        Raises ``CycleDetectedError`` before issuing anything if ``intended``
        is not a DAG. Configurator failures never raise; they are reported
        per item.
        """

        async with self._plan_lock:
            plan = build_plan(
                intended,
                self._effective_current(),
                in_flight=self._in_flight,
                needs_recreate=self._needs_recreate,
            )
            completions, self._async_completions = self._async_completions, []
            self._resume.clear()
            execution = _PassExecution(self, plan)

        log.debug(
            "Reconciliation pass planned: %d items, %d need operations",
            len(plan.actions),
            len(plan.operation_refs),
        )
        outcomes, operations = await execution.run()
        report = ReconciliationReport(
            outcomes=outcomes,
            operations=operations,
            async_completions=completions,
            in_progress=self.in_progress,
        )
        log.debug(
            "Reconciliation pass finished: %d operations issued, %d still running",
            len(operations),
            len(report.in_progress),
        )
        return report

    def _effective_current(self) -> DependencyGraph:
        items: dict[ItemRef, Item] = {item_ref(item): item for item in self._current}
        for ref, entry in self._in_flight.items():
            if entry.target is None:
                items.pop(ref, None)
            else:
                items[ref] = entry.target
        return DependencyGraph.from_items(items.values())

    def _needs_recreate(self, old_item: Item, new_item: Item) -> bool:
        item_type = new_item.item_type
        if item_type in self._recreate_only or not self._registry.supports_modify(item_type):
            return True
        try:
            configurator = self._registry.get(item_type)
        except ConfiguratorNotFoundError:
            return False
        return configurator.needs_recreate(old_item, new_item)

    def _complete(self, operation: Operation) -> None:
        operation.status = OperationStatus.COMPLETED
        if operation.kind is OperationKind.DELETE:
            self._current.discard(operation.ref)
        else:
            self._current.put(operation.item)

    def _finish(self, ref: ItemRef, entry: _InFlight) -> None:
        entry.done.set()
        if entry.deferred:
            self._resume.set()
        if self._in_flight.get(ref) is entry:
            del self._in_flight[ref]

    def _watch(
        self,
        operation: Operation,
        background: asyncio.Future[BaseException | None],
        entry: _InFlight,
    ) -> None:
        task = asyncio.create_task(
            self._await_background(operation, background, entry),
            name=f"background {operation}",
        )
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)

    async def _await_background(
        self,
        operation: Operation,
        background: asyncio.Future[BaseException | None],
        entry: _InFlight,
    ) -> None:
        error = await background
        async with self._plan_lock:
            try:
                if error is None:
                    self._complete(operation)
                    log.info("Background %s completed", operation)
                else:
                    wrapped = ConfiguratorError(operation, error)
                    wrapped.__cause__ = error
                    operation.status = OperationStatus.FAILED
                    operation.error = wrapped
                    log.warning("Background %s failed: %s", operation, error)
            finally:
                self._async_completions.append(operation)
                self._finish(operation.ref, entry)
                self._resume.set()


class _PassExecution:
    """Execution step of one pass; created under the plan lock."""

    def __init__(self, engine: Reconciler, plan: ReconciliationPlan) -> None:
        loop = asyncio.get_running_loop()
        self._engine = engine
        self._plan = plan
        self._deleted: dict[ItemRef, asyncio.Future[ItemStatus]] = {}
        self._applied: dict[ItemRef, asyncio.Future[ItemStatus]] = {}
        self._entries: dict[ItemRef, _InFlight] = {}
        self._outcomes: dict[ItemRef, ItemOutcome] = {}
        self._operations: list[Operation] = []

        in_flight = engine._in_flight  # noqa: SLF001
        for ref, action in plan.actions.items():
            self._deleted[ref] = loop.create_future()
            self._applied[ref] = loop.create_future()
            if not action.issues_operations:
                self._settle_passive(action)
                continue
            previous = in_flight.get(ref)
            if action.wait_in_flight and previous is not None:
                previous.deferred = True
                self._defer(action)
                continue
            entry = _InFlight(target=action.new if action.applies else None)
            in_flight[ref] = entry
            self._entries[ref] = entry

    async def run(self) -> tuple[dict[ItemRef, ItemOutcome], list[Operation]]:
        scheduled = dict.fromkeys(
            ref
            for ref in (*self._plan.delete_order, *self._plan.apply_order)
            if ref in self._entries
        )
        async with asyncio.TaskGroup() as group:
            for ref in scheduled:
                group.create_task(self._converge(self._plan.actions[ref]), name=f"converge {ref}")
        outcomes = {ref: self._outcomes[ref] for ref in self._plan.actions}
        return outcomes, self._operations

    def _settle_passive(self, action: PlannedAction) -> None:
        if action.kind is ActionKind.UNCHANGED:
            outcome = ItemOutcome(ref=action.ref, status=ItemStatus.UNCHANGED)
        elif action.kind is ActionKind.JOIN:
            outcome = ItemOutcome(
                ref=action.ref,
                status=ItemStatus.IN_PROGRESS,
                reason="operation from an earlier pass is still running",
            )
        else:
            outcome = ItemOutcome(
                ref=action.ref,
                status=ItemStatus.BLOCKED,
                error=action.unsatisfied,
            )
        self._outcomes[action.ref] = outcome
        _settle(self._deleted[action.ref], outcome.status)
        _settle(self._applied[action.ref], outcome.status)

    def _defer(self, action: PlannedAction) -> None:
        log.debug("Change to %s queued behind a running operation", action.ref)
        self._outcomes[action.ref] = ItemOutcome(
            ref=action.ref,
            status=ItemStatus.PENDING,
            reason="queued behind an operation that is still running",
        )
        _settle(self._deleted[action.ref], ItemStatus.PENDING)
        _settle(self._applied[action.ref], ItemStatus.PENDING)

    async def _converge(self, action: PlannedAction) -> None:
        ref = action.ref
        status = ItemStatus.FAILED
        try:
            outcome = await self._converge_item(action)
            status = outcome.status
            self._outcomes[ref] = outcome
        finally:
            _settle(self._deleted[ref], status)
            _settle(self._applied[ref], status)
            if status is not ItemStatus.IN_PROGRESS:
                self._engine._finish(ref, self._entries[ref])  # noqa: SLF001

    async def _converge_item(self, action: PlannedAction) -> ItemOutcome:
        ref = action.ref
        old = self._engine._current.get(ref)  # noqa: SLF001
        if action.deletes:
            outcome = await self._delete_phase(action, old)
            _settle(self._deleted[ref], outcome.status)
            if not outcome.status.converged:
                return outcome
            if action.kind is ActionKind.DELETE:
                if action.unsatisfied is not None:
                    return ItemOutcome(ref=ref, status=ItemStatus.BLOCKED, error=action.unsatisfied)
                return outcome
            old = None
        return await self._apply_phase(action, old)

    async def _delete_phase(self, action: PlannedAction, old: Item | None) -> ItemOutcome:
        ref = action.ref
        waiting = await self._wait_for(ref, self._deleted, self._plan.delete_after.get(ref, ()))
        if waiting is not None:
            return waiting
        if old is None:
            return ItemOutcome(ref=ref, status=ItemStatus.DELETED, reason="already absent")
        still_required = self._engine._current.dependents(ref)  # noqa: SLF001
        if still_required:
            return ItemOutcome(
                ref=ref,
                status=ItemStatus.PENDING,
                reason=f"still required by {_render(still_required)}",
            )
        return await self._issue(Operation(kind=OperationKind.DELETE, ref=ref, old=old))

    async def _apply_phase(self, action: PlannedAction, old: Item | None) -> ItemOutcome:
        ref = action.ref
        waiting = await self._wait_for(ref, self._applied, self._plan.apply_after.get(ref, ()))
        if waiting is not None:
            return waiting

        new = action.new
        if new is None:
            raise AssertionError(f"apply planned for {ref} without an intended value")
        if old is None:
            operation = Operation(kind=OperationKind.CREATE, ref=ref, new=new)
        elif old.equal(new):
            return ItemOutcome(ref=ref, status=ItemStatus.UNCHANGED)
        elif self._engine._needs_recreate(old, new):  # noqa: SLF001
            self._engine._resume.set()  # noqa: SLF001
            return ItemOutcome(
                ref=ref,
                status=ItemStatus.PENDING,
                reason="item changed while queued and now needs a recreate",
            )
        else:
            operation = Operation(kind=OperationKind.MODIFY, ref=ref, old=old, new=new)

        outcome = await self._issue(operation)
        if action.kind is ActionKind.RECREATE and outcome.status is ItemStatus.CREATED:
            return replace(outcome, status=ItemStatus.RECREATED)
        return outcome

    async def _wait_for(
        self,
        ref: ItemRef,
        futures: dict[ItemRef, asyncio.Future[ItemStatus]],
        refs: Iterable[ItemRef],
    ) -> ItemOutcome | None:
        blocked_by: list[ItemRef] = []
        waiting_on: list[ItemRef] = []
        for other in refs:
            status = await futures[other]
            if status in _BLOCKING_STATUSES:
                blocked_by.append(other)
            elif not status.converged:
                waiting_on.append(other)
        if blocked_by:
            return ItemOutcome(
                ref=ref,
                status=ItemStatus.BLOCKED,
                reason=f"blocked by {_render(blocked_by)}",
            )
        if waiting_on:
            return ItemOutcome(
                ref=ref,
                status=ItemStatus.PENDING,
                reason=f"waiting for {_render(waiting_on)}",
            )
        return None

    async def _issue(self, operation: Operation) -> ItemOutcome:
        ref = operation.ref
        engine = self._engine
        try:
            configurator = engine._registry.get(ref.item_type)  # noqa: SLF001
        except ConfiguratorNotFoundError as exc:
            operation.status = OperationStatus.FAILED
            operation.error = exc
            log.error("Cannot %s %s: %s", operation.kind, ref, exc)
            return ItemOutcome(ref=ref, status=ItemStatus.FAILED, error=exc)

        operation.status = OperationStatus.RUNNING
        self._operations.append(operation)
        log.info("Issuing %s (%s)", operation, operation.item.label)
        ctx = OperationContext(operation, loop=asyncio.get_running_loop())
        try:
            await _dispatch(configurator, ctx, operation)
        except NotSupportedError as exc:
            if operation.kind is not OperationKind.MODIFY:
                return self._fail(operation, exc)
            operation.status = OperationStatus.FAILED
            operation.error = exc
            engine._recreate_only.add(ref.item_type)  # noqa: SLF001
            engine._resume.set()  # noqa: SLF001
            log.info("Modify not supported for %s items, recreating instead", ref.item_type)
            return ItemOutcome(
                ref=ref,
                status=ItemStatus.PENDING,
                error=exc,
                reason="modify not supported; item will be recreated",
            )
        except Exception as exc:  # noqa: BLE001
            return self._fail(operation, exc)

        if ctx.background is not None:
            operation.background = True
            engine._watch(operation, ctx.background, self._entries[ref])  # noqa: SLF001
            log.debug("%s continues in background", operation)
            return ItemOutcome(ref=ref, status=ItemStatus.IN_PROGRESS)

        engine._complete(operation)  # noqa: SLF001
        return ItemOutcome(ref=ref, status=_COMPLETED_STATUS[operation.kind])

    def _fail(self, operation: Operation, cause: Exception) -> ItemOutcome:
        error = ConfiguratorError(operation, cause)
        error.__cause__ = cause
        operation.status = OperationStatus.FAILED
        operation.error = error
        log.warning("%s", error)
        return ItemOutcome(ref=operation.ref, status=ItemStatus.FAILED, error=error)


async def _dispatch(
    configurator: Configurator,
    ctx: OperationContext,
    operation: Operation,
) -> None:
    if operation.kind is OperationKind.CREATE:
        await configurator.create(ctx, operation.item)
    elif operation.kind is OperationKind.MODIFY:
        if operation.old is None or operation.new is None:
            raise AssertionError(f"modify of {operation.ref} needs both values")
        await configurator.modify(ctx, operation.old, operation.new)
    else:
        await configurator.delete(ctx, operation.item)


def _settle(future: asyncio.Future[ItemStatus], status: ItemStatus) -> None:
    if not future.done():
        future.set_result(status)


def _render(refs: Iterable[ItemRef]) -> str:
    return ", ".join(str(ref) for ref in refs)
