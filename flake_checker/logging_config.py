"""Central logging configuration."""

from __future__ import annotations

import logging
from typing import Optional

_CONFIGURED = False

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once; later calls are no-ops."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    logging.basicConfig(level=resolve_level(level), format=LOG_FORMAT)
    # quiet requests' connection logging
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    _CONFIGURED = True


def resolve_level(level: Optional[str]) -> int:
    if not level:
        return logging.WARNING
    value = logging.getLevelName(level.strip().upper())
    if isinstance(value, int):
        return value
    return logging.WARNING
