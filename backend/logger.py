"""Logging setup: console handler plus optional rotating file."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

__all__ = ["get_logger"]

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_logger(name: str = "analytics") -> logging.Logger:
    """Return a configured logger. Safe to call repeatedly (handlers are added once).

    - ANALYTICS_LOG_LEVEL: default INFO
    - ANALYTICS_LOG_FILE: optional path for a rotating log file
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level_name = os.getenv("ANALYTICS_LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    fmt = logging.Formatter(LOG_FORMAT)

    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    log_file = os.getenv("ANALYTICS_LOG_FILE")
    if log_file:
        try:
            fh = RotatingFileHandler(
                log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
            )
        except OSError:
            logger.exception("Failed to create file log handler for %s", log_file)
        else:
            fh.setFormatter(fmt)
            logger.addHandler(fh)

    return logger
