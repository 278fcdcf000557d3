from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any

import pytest

from recurrence_lite.config_manager import ExpanderConfig
from recurrence_lite.lite_models import RecurringEvent
from recurrence_lite.lite_rule_spec import RuleSpec


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Lightweight settings object used across lite tests.

    Fields mirror ExpanderConfig; values differ from the defaults so tests
    can tell the two apart.
    """
    return SimpleNamespace(
        max_results=500,
        unbounded_default_count=3,
        index_days_before=30,
        index_days_after=60,
        non_empty_scan_days=90,
        show_declined=True,
        default_time_zone="Europe/London",
    )


@pytest.fixture
def expander_config() -> ExpanderConfig:
    return ExpanderConfig()


@pytest.fixture
def test_timezone() -> str:
    """Return a deterministic timezone identifier for tests.

    Using a fixed timezone string avoids host-local timezone differences
    which can make datetime-sensitive tests flaky.
    """
    return "America/New_York"


@pytest.fixture
def monday() -> datetime:
    """Monday 2024-01-01 09:00, the start used by most series in these tests."""
    return datetime(2024, 1, 1, 9, 0)


@pytest.fixture
def make_event(monday: datetime) -> Callable[..., RecurringEvent]:
    """Return a builder for RecurringEvent with test-friendly defaults.

    ``rule`` may be given as a wire-format dict; other keyword arguments are
    RecurringEvent fields.
    """

    def builder(rule: Any = None, **fields: Any) -> RecurringEvent:
        if isinstance(rule, dict):
            rule = RuleSpec.from_json(rule)
        fields.setdefault("title", "Standup")
        fields.setdefault("start", monday)
        fields.setdefault("duration", timedelta(minutes=30))
        return RecurringEvent(recurrence_rule=rule, **fields)

    return builder


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Ensure RECURRENCE_* variables do not leak into or out of tests.

    Setting before deleting makes monkeypatch remove anything a test (or a
    loaded .env file) sets later on.
    """
    for name in [
        "RECURRENCE_DEBUG",
        "RECURRENCE_LOG_LEVEL",
        "RECURRENCE_MAX_RESULTS",
        "RECURRENCE_UNBOUNDED_DEFAULT_COUNT",
        "RECURRENCE_INDEX_DAYS_BEFORE",
        "RECURRENCE_INDEX_DAYS_AFTER",
        "RECURRENCE_NON_EMPTY_SCAN_DAYS",
        "RECURRENCE_SHOW_DECLINED",
        "RECURRENCE_DEFAULT_TIMEZONE",
    ]:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    yield
