"""Configuration management for helm_calendar."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD_DAYS = 30
DEFAULT_NOTIFY_INTERVAL_SECONDS = 3600
DEFAULT_SERVER_BIND = "127.0.0.1"
DEFAULT_SERVER_PORT = 8765
DEFAULT_STORE_FILENAME = "helm_items.json"

# Calendar dot indicator shows at most this many dots per day
MAX_DISPLAY_DOTS = 3


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Skips blank lines and comments, strips surrounding quotes from values.
    Returns an empty dict if the file is missing or unreadable.
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")
        if key:
            result[key] = val

    return result


def _env_int(name: str, minimum: int = 0) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; ignoring", name, raw)
        return None
    if value < minimum:
        logger.warning("%s=%d is below %d; ignoring", name, value, minimum)
        return None
    return value


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load the .env file into the environment.

        Variables already present in the environment are never overridden.

        Returns:
            Keys that were loaded from the .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        for key, val in parse_env_file(self.env_file_path).items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build the configuration dictionary from HELM_* environment variables.

        Recognizes:
        - HELM_STORE_PATH -> 'store_path'
        - HELM_BACKEND_URL -> 'backend_url' (use the HTTP data source)
        - HELM_LOOKAHEAD_DAYS -> 'lookahead_days' (int)
        - HELM_NOTIFY_INTERVAL_SECONDS -> 'notify_interval_seconds' (int)
        - HELM_MAX_OCCURRENCES -> 'max_occurrences_per_rule' (int)
        - HELM_SERVER_BIND / HELM_SERVER_PORT -> 'server_bind' / 'server_port'
        - HELM_LOG_LEVEL -> 'log_level'
        - HELM_TIMEZONE -> 'timezone'
        """
        cfg: dict[str, Any] = {
            "store_path": os.environ.get("HELM_STORE_PATH")
            or str(Path.cwd() / DEFAULT_STORE_FILENAME),
            "lookahead_days": DEFAULT_LOOKAHEAD_DAYS,
            "notify_interval_seconds": DEFAULT_NOTIFY_INTERVAL_SECONDS,
            "server_bind": os.environ.get("HELM_SERVER_BIND") or DEFAULT_SERVER_BIND,
            "server_port": DEFAULT_SERVER_PORT,
        }

        backend_url = os.environ.get("HELM_BACKEND_URL")
        if backend_url:
            cfg["backend_url"] = backend_url

        for env_name, key, minimum in (
            ("HELM_LOOKAHEAD_DAYS", "lookahead_days", 0),
            ("HELM_NOTIFY_INTERVAL_SECONDS", "notify_interval_seconds", 1),
            ("HELM_MAX_OCCURRENCES", "max_occurrences_per_rule", 1),
            ("HELM_SERVER_PORT", "server_port", 1),
        ):
            value = _env_int(env_name, minimum)
            if value is not None:
                cfg[key] = value

        log_level = os.environ.get("HELM_LOG_LEVEL")
        if log_level:
            cfg["log_level"] = log_level.upper()

        tz_name = os.environ.get("HELM_TIMEZONE")
        if tz_name:
            cfg["timezone"] = tz_name

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        This is the main entry point for loading configuration.
        """
        self.load_env_file()
        return self.build_config_from_env()


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and attribute-style objects."""
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
