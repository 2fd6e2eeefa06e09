"""Structured logging for code_flattener: JSON lines through stdlib handlers.

The level defaults to INFO and can be changed with `CODE_FLATTENER_LOG_LEVEL`.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

LOG_LEVEL_ENV = "CODE_FLATTENER_LOG_LEVEL"
_LOGGING_CONFIGURED = False


def log_level() -> int:
    """Level named by `CODE_FLATTENER_LOG_LEVEL`, INFO when unset or unknown."""
    name = os.environ.get(LOG_LEVEL_ENV, "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _file_handler(filename: str | Path) -> logging.FileHandler:
    return logging.FileHandler(os.path.abspath(filename), encoding="utf-8")


def setup_logging(filename: str | Path | None = None) -> structlog.BoundLogger:
    """Set up structured logging for the code_flattener package.

    The first call installs handlers and processors; later calls return the
    shared logger, attaching a file handler when a new log file is requested.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.

    Returns:
        The structlog logger shared by every module.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if _LOGGING_CONFIGURED:
        if filename:
            root = logging.getLogger()
            target = os.path.abspath(filename)
            if not any(getattr(h, "baseFilename", None) == target for h in root.handlers):
                root.addHandler(_file_handler(target))
        return structlog.get_logger("code_flattener")

    level = log_level()
    handler = _file_handler(filename) if filename else logging.StreamHandler(sys.stderr)
    logging.basicConfig(level=level, handlers=[handler], format="%(message)s")
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _LOGGING_CONFIGURED = True
    return structlog.get_logger("code_flattener")


logger = setup_logging()
