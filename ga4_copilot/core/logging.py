"""
Structured logging for the GA4 copilot service.
"""
from __future__ import annotations

import logging
import sys

from ga4_copilot.core.config import get_settings

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _level() -> int:
    return getattr(logging, get_settings().log_level.upper(), logging.INFO)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
        logger.addHandler(handler)
    logger.setLevel(_level())
    return logger


def quiet_third_party() -> None:
    """Keep chatty client libraries at WARNING unless we are debugging."""
    if _level() <= logging.DEBUG:
        return
    for name in ("httpx", "openai", "anthropic", "google.auth", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
