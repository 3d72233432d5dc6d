"""Reconciliation of a current item graph towards an intended one.

Layered flow of one pass:
1) diff intended against current (including operations still in flight)
2) plan per-item actions with delete and apply ordering constraints
3) execute independent items concurrently through registered configurators
4) fold synchronous results into the current graph and report per item
5) apply background completions as they arrive and request another pass
"""

from __future__ import annotations

from .contracts import (
    Configurator,
    DoneCallback,
    Operation,
    OperationContext,
    OperationKind,
    OperationStatus,
)
from .engine import Reconciler
from .errors import (
    ConfiguratorError,
    ConfiguratorNotFoundError,
    DuplicateConfiguratorError,
    NotSupportedError,
    ReconcilerError,
)
from .plan import ActionKind, PlannedAction, ReconciliationPlan, build_plan
from .registry import ConfiguratorRegistry
from .report import ItemOutcome, ItemStatus, ReconciliationReport

__all__ = [
    "ActionKind",
    "Configurator",
    "ConfiguratorError",
    "ConfiguratorNotFoundError",
    "ConfiguratorRegistry",
    "DoneCallback",
    "DuplicateConfiguratorError",
    "ItemOutcome",
    "ItemStatus",
    "NotSupportedError",
    "Operation",
    "OperationContext",
    "OperationKind",
    "OperationStatus",
    "PlannedAction",
    "Reconciler",
    "ReconcilerError",
    "ReconciliationPlan",
    "ReconciliationReport",
    "build_plan",
]
