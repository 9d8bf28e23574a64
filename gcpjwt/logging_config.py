from __future__ import annotations

import logging

from .settings import get_settings


def configure_logging(level: str | None = None) -> None:
    """
    Set the level of the ``gcpjwt`` logger tree.

    Notes:
    - Handlers and formatting belong to the host application.
    - ``level`` defaults to ``GCPJWT_LOG_LEVEL``; DEBUG shows cache hits,
      misses and refreshes.
    """

    logger = logging.getLogger("gcpjwt")
    logger.setLevel((level or get_settings().log_level).upper())
    logger.propagate = True
