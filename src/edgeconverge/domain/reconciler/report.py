"""Per-pass status report consumed by status publishers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from edgeconverge.domain.depgraph import ItemRef

    from .contracts import Operation


class ItemStatus(StrEnum):
    """Outcome of one item in one reconciliation pass."""

    CREATED = "created"
    MODIFIED = "modified"
    RECREATED = "recreated"
    DELETED = "deleted"
    UNCHANGED = "unchanged"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    FAILED = "failed"
    BLOCKED = "blocked"

    @property
    def converged(self) -> bool:
        return self in _CONVERGED


_CONVERGED = frozenset(
    {
        ItemStatus.CREATED,
        ItemStatus.MODIFIED,
        ItemStatus.RECREATED,
        ItemStatus.DELETED,
        ItemStatus.UNCHANGED,
    }
)


@dataclass(slots=True, frozen=True, kw_only=True)
class ItemOutcome:
    ref: ItemRef
    status: ItemStatus
    error: BaseException | None = None
    reason: str | None = None


@dataclass(slots=True)
class ReconciliationReport:
    """Outcome of one pass keyed by item identity.

    ``async_completions`` lists background operations that finished since the
    previous pass; their effect is already reflected in the current graph.
    """

    outcomes: dict[ItemRef, ItemOutcome] = field(default_factory=dict["ItemRef", "ItemOutcome"])
    operations: list[Operation] = field(default_factory=list["Operation"])
    async_completions: list[Operation] = field(default_factory=list["Operation"])
    in_progress: frozenset[ItemRef] = frozenset()

    def outcome_for(self, ref: ItemRef) -> ItemOutcome | None:
        return self.outcomes.get(ref)

    def status_for(self, ref: ItemRef) -> ItemStatus | None:
        outcome = self.outcomes.get(ref)
        return outcome.status if outcome is not None else None

    def with_status(self, *statuses: ItemStatus) -> tuple[ItemOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes.values() if outcome.status in statuses)

    @property
    def failed(self) -> tuple[ItemOutcome, ...]:
        return self.with_status(ItemStatus.FAILED)

    @property
    def blocked(self) -> tuple[ItemOutcome, ...]:
        return self.with_status(ItemStatus.BLOCKED)

    @property
    def converged(self) -> bool:
        return all(outcome.status.converged for outcome in self.outcomes.values())

    @property
    def async_ops_in_progress(self) -> bool:
        return bool(self.in_progress)

    def summary(self) -> dict[ItemStatus, int]:
        counts: dict[ItemStatus, int] = {}
        for outcome in self.outcomes.values():
            counts[outcome.status] = counts.get(outcome.status, 0) + 1
        return counts
