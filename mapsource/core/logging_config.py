"""Logging setup for the service.

Modules log through ``logging.getLogger(__name__)``; this module only
configures the root logger once from settings.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mapsource.core import config

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging(settings: config.Settings) -> None:
    """Configure the root logger from settings.

    Calling this more than once only updates the level.

    Args:
        settings: Application settings providing ``log_level``.
    """
    global _configured

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if not _configured:
        logging.basicConfig(level=level, format=LOG_FORMAT)
        _configured = True
    logging.getLogger().setLevel(level)
