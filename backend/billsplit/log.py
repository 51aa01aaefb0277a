"""Logging setup for the billsplit backend.

Usage:
    from billsplit.log import get_logger
    logger = get_logger(__name__)

Environment variables:
    BILLSPLIT_LOG_LEVEL: DEBUG, INFO, WARNING or ERROR. Default: INFO
"""
from __future__ import annotations

import logging
import os
import sys

ROOT_LOGGER_NAME = "billsplit"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_FORMAT_DEBUG = "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

_logging_configured = False


def level_from_name(name: str | None, default: int = logging.INFO) -> int:
    if not name:
        return default
    return _LEVELS.get(name.strip().upper(), default)


def configure_logging(level: int | None = None) -> None:
    """Attach a stderr handler to the billsplit logger namespace once.

    Args:
        level: Log level to use. If None, reads BILLSPLIT_LOG_LEVEL.
    """
    global _logging_configured

    if _logging_configured:
        return

    if level is None:
        level = level_from_name(os.environ.get("BILLSPLIT_LOG_LEVEL"))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT_DEBUG if level == logging.DEBUG else LOG_FORMAT))

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    root_logger.propagate = False

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger inside the billsplit namespace.

    Module names already under billsplit (the usual ``__name__``) are used
    as-is; anything else is nested below it.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
