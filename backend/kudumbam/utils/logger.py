"""
Kudumbam — Logging Configuration
One console logger for the whole backend and the client package. The level
follows the settings: DEBUG while `app_debug` is on, else `log_level`.
"""

import logging
import sys
from typing import Optional, Union

from kudumbam.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries whose per-request chatter drowns the service log.
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def resolve_level(level: Union[int, str, None] = None) -> int:
    """Explicit level first, then the settings."""
    if level is None:
        settings = get_settings()
        level = logging.DEBUG if settings.app_debug else settings.log_level
    if isinstance(level, str):
        value = logging.getLevelName(level.strip().upper())
        return value if isinstance(value, int) else logging.INFO
    return level


def setup_logger(name: str = "kudumbam", level: Union[int, str, None] = None) -> logging.Logger:
    """Create (or re-level) a logger with console output."""
    logger = logging.getLogger(name)
    resolved = resolve_level(level)
    logger.setLevel(resolved)
    logger.propagate = False

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setLevel(resolved)

    for noisy in QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(max(logging.WARNING, resolved))
    return logger


def set_level(level: Optional[Union[int, str]] = None) -> None:
    """Re-apply the level to the shared logger, e.g. after settings change."""
    setup_logger(logger.name, level)


# Global logger instance
logger = setup_logger()
