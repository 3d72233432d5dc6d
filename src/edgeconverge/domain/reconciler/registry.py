"""Mapping from item type to the configurator that applies it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import ConfiguratorNotFoundError, DuplicateConfiguratorError

if TYPE_CHECKING:
    from .contracts import Configurator


@dataclass(slots=True)
class ConfiguratorRegistry:
    """Explicit registry owned by whoever builds the reconciler."""

    _configurators: dict[str, Configurator] = field(
        default_factory=dict["str", "Configurator"], repr=False
    )

    def register(self, item_type: str, configurator: Configurator) -> None:
        if item_type in self._configurators:
            raise DuplicateConfiguratorError(item_type)
        self._configurators[item_type] = configurator

    def get(self, item_type: str) -> Configurator:
        configurator = self._configurators.get(item_type)
        if configurator is None:
            raise ConfiguratorNotFoundError(item_type)
        return configurator

    def __contains__(self, item_type: object) -> bool:
        return item_type in self._configurators

    @property
    def item_types(self) -> tuple[str, ...]:
        return tuple(self._configurators)

    def supports_modify(self, item_type: str) -> bool:
        configurator = self._configurators.get(item_type)
        if configurator is None:
            return True
        return bool(getattr(configurator, "supports_modify", True))
