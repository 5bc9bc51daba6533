"""Process logging setup and key=value field formatting."""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

from wardflow.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install the stdout handler once; later calls are no-ops."""

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = (level or get_settings().log_level).upper()
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT, stream=sys.stdout)
    logging.getLogger("wardflow").setLevel(resolved_level)
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def format_fields(**fields: Any) -> str:
    """Render ``key=value`` pairs in the pipe-delimited log style.

    ``None`` values are dropped so optional identifiers do not clutter
    transition logs.
    """
    return " | ".join(
        f"{key}={value}" for key, value in fields.items() if value is not None
    )
