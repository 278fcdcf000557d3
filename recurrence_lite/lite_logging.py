"""
Central logging configuration for recurrence_lite.

Expansion and indexing log per-series detail at DEBUG; this module keeps
those loggers at INFO unless debugging is requested.
"""

import logging
import os
from typing import Optional

LITE_MODULES = [
    "recurrence_lite",
    "recurrence_lite.__main__",
    "recurrence_lite.lite_datetime_utils",
    "recurrence_lite.lite_models",
    "recurrence_lite.lite_rule_spec",
    "recurrence_lite.lite_cycle_iterator",
    "recurrence_lite.lite_occurrence_expander",
    "recurrence_lite.lite_exception_overlay",
    "recurrence_lite.lite_occurrence",
    "recurrence_lite.lite_event_series",
    "recurrence_lite.lite_series_splitter",
    "recurrence_lite.lite_date_bucket_index",
    "recurrence_lite.config_manager",
]

# Third-party loggers kept quiet unless explicitly reset
SUPPRESSED_LOGGERS = ["icalendar", "dateutil"]


def configure_lite_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Configure logging levels for recurrence_lite.

    Args:
        debug_mode: Whether to enable debug logging for recurrence_lite modules
        force_debug: Override debug mode setting (None to use env var detection)
        log_level: Root log level name when not debugging (default INFO)

    Environment Variables:
        RECURRENCE_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        RECURRENCE_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("RECURRENCE_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("RECURRENCE_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.INFO
    if final_debug:
        root_level = logging.DEBUG
    elif log_level:
        root_level = getattr(logging, log_level.upper(), logging.INFO)
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Handlers are left alone so the colorized setup from __init__ survives
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(handler)

    logger_config: dict[str, int] = {name: logging.WARNING for name in SUPPRESSED_LOGGERS}
    # Propagated records skip the root logger's level, so quiet modules here
    lite_level = logging.DEBUG if final_debug else max(logging.INFO, root_level)
    for module in LITE_MODULES:
        logger_config[module] = lite_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for recurrence_lite modules")
    else:
        root_logger.info("Production logging configuration applied")


def reset_logging_to_debug() -> None:
    """
    Reset all loggers to DEBUG level for troubleshooting.
    """
    logging.getLogger().setLevel(logging.DEBUG)
    for logger_name in SUPPRESSED_LOGGERS + LITE_MODULES:
        logging.getLogger(logger_name).setLevel(logging.DEBUG)

    logging.getLogger().info("All loggers reset to DEBUG level for troubleshooting")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["recurrence_lite", *SUPPRESSED_LOGGERS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
