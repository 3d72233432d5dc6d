"""Reconciler error definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .contracts import Operation


class ReconcilerError(RuntimeError):
    """Base class for reconciler errors."""


class ConfiguratorNotFoundError(ReconcilerError):
    """Raised when no configurator is registered for an item type."""

    def __init__(self, item_type: str) -> None:
        super().__init__(f"No configurator registered for item type: {item_type}")
        self.item_type = item_type


class DuplicateConfiguratorError(ReconcilerError):
    """Raised when registering a second configurator for the same item type."""

    def __init__(self, item_type: str) -> None:
        super().__init__(f"Configurator already registered for item type: {item_type}")
        self.item_type = item_type


class NotSupportedError(ReconcilerError):
    """Raised by a configurator that cannot modify items in place."""


class ConfiguratorError(ReconcilerError):
    """Wraps the failure reported by a configurator for one operation."""

    def __init__(self, operation: Operation, cause: BaseException) -> None:
        super().__init__(f"{operation.kind} of {operation.ref} failed: {cause}")
        self.operation = operation
        self.cause = cause
