"""Occurrence expansion for recurrence_lite.

:func:`expand` turns a rule and a series start into the concrete start times
that fall in a window. It is pure: identical inputs always produce identical
output. The event-level helpers below it layer inclusions and per-occurrence
overrides on top of the rule's output.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional

from .config_manager import ExpanderConfig
from .lite_cycle_iterator import iterate_cycle
from .lite_datetime_utils import (
    A_DAY,
    A_SECOND,
    TimeZoneConverter,
    convert_wall_time,
    from_date_key,
    make_datetime,
    to_date_key,
)
from .lite_rule_spec import Frequency, RuleSpec

if TYPE_CHECKING:
    from .lite_models import RecurringEvent

logger = logging.getLogger(__name__)

_PERIOD_SECONDS = {
    Frequency.WEEKLY: 7 * 24 * 60 * 60,
    Frequency.DAILY: 24 * 60 * 60,
    Frequency.HOURLY: 60 * 60,
    Frequency.MINUTELY: 60,
    Frequency.SECONDLY: 1,
}

# Longest gap assumed between an occurrence's start and the window it may
# overlap, per frequency.
_DURATION_CAPS = {
    Frequency.YEARLY: timedelta(days=366),
    Frequency.MONTHLY: timedelta(days=31),
    Frequency.WEEKLY: timedelta(days=7),
}

_TIME_SHIFTING_KEYS = ("start", "duration", "timeZone")

_DEFAULT_CONFIG = ExpanderConfig()


def is_complex_anchor(rule: RuleSpec, start: datetime) -> bool:
    """True when the start day may be missing from some cycles.

    Day 29-31 is absent from some months, and 29 February from most years.
    """
    return start.day > 28 and (
        rule.frequency == Frequency.MONTHLY
        or (rule.frequency == Frequency.YEARLY and start.month == 2)
    )


def _find_anchor(
    rule: RuleSpec, start: datetime, begin: datetime, count: int, complex_anchor: bool
) -> datetime:
    year, month0, day = start.year, start.month - 1, start.day

    if count or begin == start:
        # A count is always enumerated from the start
        if not complex_anchor:
            return start
    elif rule.frequency == Frequency.YEARLY:
        year = begin.year - (begin.year - year) % rule.interval
    elif rule.frequency == Frequency.MONTHLY:
        months = 12 * (begin.year - year) + (begin.month - 1 - month0)
        year = begin.year
        month0 = begin.month - 1 - months % rule.interval
    else:
        period = timedelta(seconds=rule.interval * _PERIOD_SECONDS[rule.frequency])
        return begin - (begin - start) % period

    return make_datetime(
        year, month0, 1 if complex_anchor else day, start.hour, start.minute, start.second
    )


def expand(
    rule: RuleSpec,
    start: datetime,
    begin: Optional[datetime] = None,
    end: Optional[datetime] = None,
    config: Optional[ExpanderConfig] = None,
) -> list[datetime]:
    """Return the occurrences of ``rule`` starting within [begin, end).

    Args:
        rule: Recurrence rule
        start: Series start; always the first occurrence, even when the rule
            itself would not generate it
        begin: Window start (defaults to ``start``)
        end: Window end, exclusive. ``rule.until`` tightens it.
        config: Expansion limits

    Returns:
        Strictly increasing occurrence start times. Without any of end, until
        and count only ``config.unbounded_default_count`` occurrences are
        produced.
    """
    config = config or _DEFAULT_CONFIG
    start = start.replace(microsecond=0)
    count = rule.count or 0
    until = rule.until

    if begin is None or begin <= start:
        begin = start
    if end is None and until is None and not count:
        count = config.unbounded_default_count
    if until is not None and (end is None or end > until):
        end = until + A_SECOND
    if end is not None and begin >= end:
        return []

    complex_anchor = is_complex_anchor(rule, start)
    anchor = _find_anchor(rule, start, begin, count, complex_anchor)

    if count <= 0 or count > config.max_results:
        count = config.max_results

    results: list[datetime] = []

    # The start counts towards the series even when the window skips it
    if anchor <= start:
        if begin <= start:
            results.append(start)
        count -= 1
        if not count:
            return results

    while True:
        candidates, next_anchor = iterate_cycle(rule, anchor, start, complex_anchor)
        if candidates is None:
            break
        if anchor <= start:
            candidates = [candidate for candidate in candidates if candidate > start]
        anchor = next_anchor
        for candidate in candidates:
            if end is not None and candidate >= end:
                return results
            if begin <= candidate:
                results.append(candidate)
            count -= 1
            if not count:
                return results

    return results


def matches(
    rule: RuleSpec, start: datetime, when: datetime, config: Optional[ExpanderConfig] = None
) -> bool:
    """True when the series defined by ``rule`` and ``start`` occurs at ``when``."""
    return bool(expand(rule, start, when, when + A_SECOND, config))


def is_removal(patch: Optional[dict[str, Any]]) -> bool:
    """True for an override that removes its occurrence."""
    return patch is None or patch.get("excluded") is True


def shifts_time(patch: Optional[dict[str, Any]]) -> bool:
    """True for an override that moves or resizes its occurrence."""
    return bool(patch) and any(key in patch for key in _TIME_SHIFTING_KEYS)


def _merge_keys(
    keyed: dict[str, datetime],
    event: RecurringEvent,
    lower: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict[str, datetime]:
    def in_window(when: datetime) -> bool:
        return (lower is None or lower <= when) and (end is None or when < end)

    for inclusion in event.inclusions:
        if in_window(inclusion):
            keyed.setdefault(to_date_key(inclusion), inclusion)
    for key, patch in (event.recurrence_overrides or {}).items():
        if is_removal(patch):
            keyed.pop(key, None)
            continue
        when = from_date_key(key)
        if in_window(when) or shifts_time(patch):
            keyed[key] = when
    return keyed


def expand_event(
    event: RecurringEvent,
    begin: Optional[datetime] = None,
    end: Optional[datetime] = None,
    config: Optional[ExpanderConfig] = None,
) -> list[datetime]:
    """Occurrence start times (by date-key) of an event within [begin, end).

    The rule's output is merged with the event's inclusions, removals and
    overrides. Overrides that move or resize their occurrence are kept even
    when their key lies outside the window, since the moved occurrence may
    land inside it.
    """
    start = event.start
    lower = start if begin is None or begin < start else begin
    rule = event.recurrence_rule
    if rule is not None:
        dates = expand(rule, start, begin, end, config)
    elif end is None or start < end:
        dates = [start] if lower <= start else []
    else:
        dates = []

    keyed = _merge_keys({to_date_key(when): when for when in dates}, event, lower, end)
    return [keyed[key] for key in sorted(keyed)]


def all_start_dates(
    event: RecurringEvent, config: Optional[ExpanderConfig] = None
) -> list[datetime]:
    """Every start date of a bounded series, in order.

    Overrides that move an occurrence are listed under their original date.
    An unbounded series only lists its start.
    """
    rule = event.recurrence_rule
    if rule is not None and not rule.is_bounded:
        return [event.start]
    dates = expand(rule, event.start, None, None, config) if rule is not None else [event.start]
    keyed = _merge_keys({to_date_key(when): when for when in dates}, event)
    return [keyed[key] for key in sorted(keyed)]


def total_occurrences(event: RecurringEvent, config: Optional[ExpanderConfig] = None) -> float:
    """Number of occurrences in a series; ``math.inf`` when unbounded."""
    rule = event.recurrence_rule
    if rule is None and not event.recurrence_overrides and not event.inclusions:
        return 1
    if rule is not None and not rule.is_bounded:
        return math.inf
    return len(all_start_dates(event, config))


def _earliest_start(event: RecurringEvent, begin: datetime) -> datetime:
    duration = event.duration
    rule = event.recurrence_rule
    if rule is not None:
        duration = min(duration, _DURATION_CAPS.get(rule.frequency, A_DAY))
    # Second precision: an occurrence overlaps when start + duration > begin
    return begin - max(duration - A_SECOND, timedelta(0))


def occurrence_keys_in_range(
    event: RecurringEvent,
    begin: datetime,
    end: datetime,
    view_time_zone: Optional[str] = None,
    converter: Optional[TimeZoneConverter] = None,
    config: Optional[ExpanderConfig] = None,
) -> list[str]:
    """Date-keys of occurrences that may overlap [begin, end).

    ``begin`` and ``end`` are wall-clock times in ``view_time_zone``. The
    result may include keys outside the range but never misses one inside it.
    """
    event_time_zone = event.time_zone
    begin = convert_wall_time(begin, view_time_zone, event_time_zone, converter)
    end = convert_wall_time(end, view_time_zone, event_time_zone, converter)

    rule = event.recurrence_rule
    if rule is not None and rule.count is not None:
        # Enumerating a counted series is needed anyway to honour the count
        dates = all_start_dates(event, config)
    else:
        dates = expand_event(event, _earliest_start(event, begin), end, config)
    return [to_date_key(when) for when in dates]
