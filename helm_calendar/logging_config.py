"""Logger level configuration for helm_calendar.

Quiets noisy third-party loggers and applies the package level from config
or the environment. Handlers and formatters are installed by
``helm_calendar._init_logging``.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

_TRUTHY = ("1", "true", "yes", "on")
_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_THIRD_PARTY_LEVELS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


def resolve_level(level_name: Optional[str] = None, debug_mode: bool = False) -> int:
    """Resolve the effective package level.

    HELM_DEBUG forces DEBUG; otherwise HELM_LOG_LEVEL, then ``level_name``,
    then DEBUG/INFO from ``debug_mode``.
    """
    if os.getenv("HELM_DEBUG", "").strip().lower() in _TRUTHY:
        return logging.DEBUG
    for candidate in (os.getenv("HELM_LOG_LEVEL", ""), level_name or ""):
        name = candidate.strip().upper()
        if name in _VALID_LEVELS:
            return getattr(logging, name)
    return logging.DEBUG if debug_mode else logging.INFO


def configure_logging(level_name: Optional[str] = None, debug_mode: bool = False) -> int:
    """Apply package and third-party logger levels.

    Returns:
        The level applied to the root and ``helm_calendar`` loggers
    """
    level = resolve_level(level_name, debug_mode)
    logging.getLogger().setLevel(level)
    logging.getLogger("helm_calendar").setLevel(level)

    for logger_name, third_party_level in _THIRD_PARTY_LEVELS.items():
        logging.getLogger(logger_name).setLevel(max(third_party_level, level))

    logging.getLogger(__name__).debug(
        "Logging configured at %s", logging.getLevelName(level)
    )
    return level
