"""Loguru sink setup for the command line programs."""
from __future__ import annotations

import sys
from typing import Any

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{name}:{line} | {message} {extra}"
)


def configure_logging(level: str = "INFO", *, sink: Any = None) -> None:
    """Replace the default loguru sink with one that renders bound extras."""
    logger.remove()
    logger.add(
        sink if sink is not None else sys.stderr,
        level=level.upper(),
        format=LOG_FORMAT,
        backtrace=False,
        diagnose=False,
    )
