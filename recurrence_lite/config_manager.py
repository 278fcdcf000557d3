"""Configuration management for recurrence_lite."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Hard cap on occurrences produced by a single expansion (2 ** 14)
MAX_RESULTS_LIMIT = 16384


@dataclass
class ExpanderConfig:
    """Configuration for occurrence expansion and date indexing.

    Consolidates all engine settings with explicit defaults.
    """

    # Expansion limits
    max_results: int = MAX_RESULTS_LIMIT
    unbounded_default_count: int = 2

    # Sliding window margins for the recurring index, in days
    index_days_before: int = 60
    index_days_after: int = 120

    # Date queries
    non_empty_scan_days: int = 366
    show_declined: bool = False
    default_time_zone: str | None = None

    def __post_init__(self) -> None:
        if self.max_results <= 0 or self.max_results > MAX_RESULTS_LIMIT:
            logger.warning(
                "max_results=%r out of range; clamping to %d", self.max_results, MAX_RESULTS_LIMIT
            )
            self.max_results = MAX_RESULTS_LIMIT
        if self.unbounded_default_count < 1:
            self.unbounded_default_count = 1
        self.index_days_before = max(1, self.index_days_before)
        self.index_days_after = max(1, self.index_days_after)

    @classmethod
    def from_settings(cls, settings: Any) -> ExpanderConfig:
        """Extract engine configuration from a settings object or dict.

        Args:
            settings: Configuration object or mapping with engine settings

        Returns:
            ExpanderConfig with values from settings or defaults
        """
        if settings is None:
            return cls()
        return cls(
            max_results=int(get_config_value(settings, "max_results", MAX_RESULTS_LIMIT)),
            unbounded_default_count=int(get_config_value(settings, "unbounded_default_count", 2)),
            index_days_before=int(get_config_value(settings, "index_days_before", 60)),
            index_days_after=int(get_config_value(settings, "index_days_after", 120)),
            non_empty_scan_days=int(get_config_value(settings, "non_empty_scan_days", 366)),
            show_declined=bool(get_config_value(settings, "show_declined", False)),
            default_time_zone=get_config_value(settings, "default_time_zone", None),
        )


_INT_SETTINGS = {
    "RECURRENCE_MAX_RESULTS": "max_results",
    "RECURRENCE_UNBOUNDED_DEFAULT_COUNT": "unbounded_default_count",
    "RECURRENCE_INDEX_DAYS_BEFORE": "index_days_before",
    "RECURRENCE_INDEX_DAYS_AFTER": "index_days_after",
    "RECURRENCE_NON_EMPTY_SCAN_DAYS": "non_empty_scan_days",
}


class ConfigManager:
    """Manages engine configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []

        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug(
                "Failed to read .env file for defaults (continuing): %s",
                str(self.env_file_path),
                exc_info=True,
            )
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()

            # Skip empty lines and comments
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - RECURRENCE_MAX_RESULTS -> 'max_results' (int)
        - RECURRENCE_UNBOUNDED_DEFAULT_COUNT -> 'unbounded_default_count' (int)
        - RECURRENCE_INDEX_DAYS_BEFORE -> 'index_days_before' (int)
        - RECURRENCE_INDEX_DAYS_AFTER -> 'index_days_after' (int)
        - RECURRENCE_NON_EMPTY_SCAN_DAYS -> 'non_empty_scan_days' (int)
        - RECURRENCE_SHOW_DECLINED -> 'show_declined' (bool)
        - RECURRENCE_DEFAULT_TIMEZONE -> 'default_time_zone'

        Returns:
            Configuration dictionary accepted by ExpanderConfig.from_settings
        """
        cfg: dict[str, Any] = {}

        for env_name, key in _INT_SETTINGS.items():
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                cfg[key] = int(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_name, raw)

        show_declined = os.environ.get("RECURRENCE_SHOW_DECLINED")
        if show_declined:
            cfg["show_declined"] = show_declined.strip().lower() in ("1", "true", "yes", "on")

        if os.environ.get("RECURRENCE_DEFAULT_TIMEZONE"):
            cfg["default_time_zone"] = get_default_timezone()

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()


def load_expander_config(env_file_path: Path | None = None) -> ExpanderConfig:
    """Build an ExpanderConfig from the environment and an optional .env file."""
    return ExpanderConfig.from_settings(ConfigManager(env_file_path).load_full_config())


def get_default_timezone(fallback: str = "UTC") -> str:
    """Get default timezone from environment with validation.

    Args:
        fallback: Fallback timezone if not configured or invalid

    Returns:
        Valid IANA timezone string
    """
    import zoneinfo

    timezone = os.environ.get("RECURRENCE_DEFAULT_TIMEZONE", fallback)

    try:
        zoneinfo.ZoneInfo(timezone)
        return timezone
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "Invalid timezone %r, falling back to %r", timezone, fallback, exc_info=True
        )
        return fallback


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and dataclass-like objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
