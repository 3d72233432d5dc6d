"""Diff of intended against current state, expressed as per-item actions.

Planning is pure: it reads both graphs plus the set of operations still in
flight and produces a ``ReconciliationPlan``. The plan carries, per item, the
action to take and the items whose completion it has to wait for:
- deletions wait for the deletion of every current dependent
- creations and modifications wait for every intended dependency
- a recreate is a deletion followed by a creation of the same identity
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from edgeconverge.domain.depgraph import DependencyUnsatisfiedError, item_ref

if TYPE_CHECKING:
    from edgeconverge.domain.depgraph import Dependency, DependencyGraph, Item, ItemRef

type RecreatePolicy = Callable[[Item, Item], bool]


class ActionKind(StrEnum):
    CREATE = "create"
    MODIFY = "modify"
    RECREATE = "recreate"
    DELETE = "delete"
    UNCHANGED = "unchanged"
    JOIN = "join"
    BLOCKED = "blocked"


_DELETING = frozenset({ActionKind.DELETE, ActionKind.RECREATE})
_APPLYING = frozenset({ActionKind.CREATE, ActionKind.MODIFY, ActionKind.RECREATE})


@dataclass(slots=True, kw_only=True)
class PlannedAction:
    """Action planned for one item identity.

    ``old`` is the value the item is believed to hold when planning (the
    current value, or the target of an operation still in flight); ``new`` is
    the intended value. ``wait_in_flight`` marks actions that may only start
    once an operation from an earlier pass has finished. ``unsatisfied`` is set
    for intended items excluded because their dependencies are missing.
    """

    ref: ItemRef
    kind: ActionKind
    old: Item | None = None
    new: Item | None = None
    wait_in_flight: bool = False
    unsatisfied: DependencyUnsatisfiedError | None = None

    @property
    def deletes(self) -> bool:
        return self.kind in _DELETING

    @property
    def applies(self) -> bool:
        return self.kind in _APPLYING

    @property
    def issues_operations(self) -> bool:
        return self.deletes or self.applies


@dataclass(slots=True)
class ReconciliationPlan:
    actions: dict[ItemRef, PlannedAction] = field(
        default_factory=dict["ItemRef", "PlannedAction"]
    )
    delete_order: tuple[ItemRef, ...] = ()
    apply_order: tuple[ItemRef, ...] = ()
    delete_after: dict[ItemRef, tuple[ItemRef, ...]] = field(
        default_factory=dict["ItemRef", "tuple[ItemRef, ...]"]
    )
    apply_after: dict[ItemRef, tuple[ItemRef, ...]] = field(
        default_factory=dict["ItemRef", "tuple[ItemRef, ...]"]
    )

    def action_for(self, ref: ItemRef) -> PlannedAction | None:
        return self.actions.get(ref)

    @property
    def operation_refs(self) -> tuple[ItemRef, ...]:
        return tuple(ref for ref, action in self.actions.items() if action.issues_operations)


def build_plan(
    intended: DependencyGraph,
    current: DependencyGraph,
    *,
    in_flight: Mapping[ItemRef, object],
    needs_recreate: RecreatePolicy,
) -> ReconciliationPlan:
    """Diff ``intended`` against ``current``.

    ``current`` must already reflect the targets of operations in flight; the
    refs listed in ``in_flight`` are joined when the intent did not change and
    queued behind the running operation otherwise. They always get an action,
    so an item depending on one (even one now declared external) waits for it.

    Raises ``CycleDetectedError`` if ``intended`` is not a DAG.
    """

    intended_order = intended.topological_order()
    current_order = current.reverse_topological_order()

    unsatisfied = _find_unsatisfied(intended, intended_order)
    desired: dict[ItemRef, Item] = {}
    for item in intended_order:
        ref = item_ref(item)
        if not item.external and ref not in unsatisfied:
            desired[ref] = item

    plan = ReconciliationPlan()
    candidates = dict.fromkeys(
        [
            *(item_ref(item) for item in current_order),
            *(item_ref(item) for item in intended_order if not item.external),
            *in_flight,
        ]
    )
    for ref in candidates:
        action = _diff_item(
            ref,
            old=current.get(ref),
            new=desired.get(ref),
            running=ref in in_flight,
            needs_recreate=needs_recreate,
        )
        action.unsatisfied = unsatisfied.get(ref)
        plan.actions[ref] = action

    _cascade_teardown(plan, current, desired)

    plan.delete_order = tuple(
        ref for ref in (item_ref(item) for item in current_order) if plan.actions[ref].deletes
    )
    plan.apply_order = tuple(ref for ref in desired if plan.actions[ref].applies)
    for ref in plan.delete_order:
        plan.delete_after[ref] = tuple(
            dependent for dependent in current.dependents(ref) if dependent in plan.actions
        )
    for ref in plan.apply_order:
        new_item = desired[ref]
        plan.apply_after[ref] = tuple(
            dict.fromkeys(
                dep.required for dep in new_item.dependencies() if dep.required in plan.actions
            )
        )
    return plan


def _diff_item(
    ref: ItemRef,
    *,
    old: Item | None,
    new: Item | None,
    running: bool,
    needs_recreate: RecreatePolicy,
) -> PlannedAction:
    if old is None and new is None:
        if running:
            # A deletion still in flight and the item is not wanted anymore.
            return PlannedAction(ref=ref, kind=ActionKind.JOIN)
        return PlannedAction(ref=ref, kind=ActionKind.BLOCKED)

    if old is not None and new is not None and old.equal(new):
        kind = ActionKind.JOIN if running else ActionKind.UNCHANGED
        return PlannedAction(ref=ref, kind=kind, old=old, new=new)

    if old is None:
        kind = ActionKind.CREATE
    elif new is None:
        kind = ActionKind.DELETE
    elif needs_recreate(old, new):
        kind = ActionKind.RECREATE
    else:
        kind = ActionKind.MODIFY
    return PlannedAction(ref=ref, kind=kind, old=old, new=new, wait_in_flight=running)


def _find_unsatisfied(
    intended: DependencyGraph,
    intended_order: tuple[Item, ...],
) -> dict[ItemRef, DependencyUnsatisfiedError]:
    unsatisfied: dict[ItemRef, DependencyUnsatisfiedError] = {}
    for item in intended_order:
        missing: list[Dependency] = [
            dep
            for dep in item.dependencies()
            if dep.required not in intended or dep.required in unsatisfied
        ]
        if missing:
            ref = item_ref(item)
            unsatisfied[ref] = DependencyUnsatisfiedError(ref, missing)
    return unsatisfied


def _cascade_teardown(
    plan: ReconciliationPlan,
    current: DependencyGraph,
    desired: Mapping[ItemRef, Item],
) -> None:
    """Tear down every current dependent of an item that is being deleted.

    Dependents that stay intended are recreated once their dependency is back.
    """

    pending = [ref for ref, action in plan.actions.items() if action.deletes]
    while pending:
        ref = pending.pop()
        for dependent in current.dependents(ref):
            action = plan.actions.get(dependent)
            if action is None or action.deletes:
                continue
            running = action.wait_in_flight or action.kind is ActionKind.JOIN
            new_item = desired.get(dependent)
            if new_item is None:
                action.kind = ActionKind.DELETE
            else:
                action.kind = ActionKind.RECREATE
                action.new = new_item
            action.old = current.get(dependent)
            action.wait_in_flight = running
            pending.append(dependent)
