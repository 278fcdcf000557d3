"""Shared pytest configuration for the recurrence_lite test suite."""

import logging
from collections.abc import Generator
from typing import Any

import pytest

from recurrence_lite.lite_logging import LITE_MODULES, SUPPRESSED_LOGGERS


@pytest.fixture(autouse=True)
def restore_logging_levels() -> Generator[None, Any, None]:
    """Undo logger level changes made by CLI and logging-config tests."""
    names = ["", *LITE_MODULES, *SUPPRESSED_LOGGERS]
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


def pytest_configure(config: Any) -> None:
    """Configure pytest with optimized markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "critical_path: Core functionality tests")
    config.addinivalue_line("markers", "smoke: Basic smoke tests")
