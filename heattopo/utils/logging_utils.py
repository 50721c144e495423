"""
Logging helper shared by all heattopo modules.
"""

from __future__ import annotations

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s: %(message)s"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Create a logger with uniform format.

    Params:
        name: logger name, usually __name__ of the caller module.
        level: logging level string (e.g., 'DEBUG', 'INFO'). None keeps the
            current level (INFO for a fresh logger).

    Returns:
        Configured logging.Logger instance.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    if level is not None:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def set_package_level(level: str) -> None:
    """Apply a logging level to every heattopo logger created so far."""
    resolved = getattr(logging, level.upper(), logging.INFO)
    for name, logger in logging.root.manager.loggerDict.items():
        if name.startswith("heattopo") and isinstance(logger, logging.Logger):
            logger.setLevel(resolved)
