"""Logging configuration shared by the CLI and the HTTP app.

Logs go to stderr through a rich handler so they never mix with rendered
output or captured program output written to stdout.
"""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .settings import get_settings


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Explicit level name; defaults to ``SCRIPTPLATE_LOG_LEVEL``.

    Returns:
        The configured ``scriptplate`` logger.
    """
    level_name = (level or get_settings().log_level).upper()

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter(fmt="%(name)s: %(message)s"))

    logger = logging.getLogger("scriptplate")
    logger.setLevel(getattr(logging, level_name, logging.WARNING))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False
    return logger
