"""Root logger setup for the agent."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Install a stderr handler on the root logger.

    A no-op when the root logger already has handlers, unless ``force`` is set.
    """

    logging.basicConfig(level=level, format=LOG_FORMAT, force=force)
