"""
Logging setup shared by every module.
Raw model output is only ever logged at DEBUG.
"""
import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        return logging.INFO
    return resolved


def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Configure and return a logger instance.

    Args:
        name: Logger name (usually __name__)
        level: Log level name. Defaults to env LOG_LEVEL or INFO; unknown names fall back to INFO.

    Returns:
        Configured logger instance
    """
    log_level = _resolve_level(level)

    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # One stdout handler per named logger
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    return logger
