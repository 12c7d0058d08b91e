"""helm_calendar - recurring item projection and calendar aggregation engine.

Projects recurring tasks and todos into virtual occurrences, merges them with
materialized instances into a date-keyed calendar index, and drives
due-today notifications. Imports are kept light; the server and data sources
load on demand.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorlog formatter on a stderr handler when the root logger
    has none, then applies the level. HELM_DEBUG (truthy values "1", "true",
    "yes", "on") forces DEBUG.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("HELM_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message, with only the level colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def load_config(args: Optional[object] = None) -> dict:
    """Load configuration from .env and HELM_* variables, then CLI overrides."""
    from helm_calendar.core.config_manager import ConfigManager

    cfg = ConfigManager().load_full_config()
    if args is not None:
        for attr, key in (
            ("store", "store_path"),
            ("backend_url", "backend_url"),
            ("port", "server_port"),
            ("bind", "server_bind"),
            ("lookahead_days", "lookahead_days"),
            ("log_level", "log_level"),
        ):
            value = getattr(args, attr, None)
            if value is not None:
                cfg[key] = value
    return cfg


def run_server(args: Optional[object] = None) -> None:
    """Start the HTTP API and notification scheduler (blocking)."""
    import logging
    import os

    _init_logging(os.environ.get("HELM_LOG_LEVEL"))

    from helm_calendar.api.server import start_server
    from helm_calendar.logging_config import configure_logging

    cfg = load_config(args)
    configure_logging(cfg.get("log_level"))
    logging.getLogger(__name__).info(
        "Starting helm_calendar server on %s:%s", cfg.get("server_bind"), cfg.get("server_port")
    )
    start_server(cfg)
