"""Single-cycle candidate generation for recurrence rules.

One call to :func:`iterate_cycle` examines the period that starts at an
anchor (a week, a month, a year, ...), builds every candidate date-time in
it, narrows them with the rule's restrictions, and advances the anchor by one
interval. Empty cycles are skipped, up to a per-frequency attempt ceiling.
"""

import calendar
import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from typing import Optional

from .lite_datetime_utils import A_DAY, make_datetime
from .lite_rule_spec import Frequency, RuleSpec

logger = logging.getLogger(__name__)

# Cycles examined before giving up on finding a candidate. Large enough to
# cross the worst calendar gaps, e.g. a monthly rule on the 31st.
MAX_ATTEMPTS: dict[Frequency, int] = {
    Frequency.YEARLY: 10,
    Frequency.MONTHLY: 24,
    Frequency.WEEKLY: 53,
    Frequency.DAILY: 366,
    Frequency.HOURLY: 48,
    Frequency.MINUTELY: 120,
    Frequency.SECONDLY: 120,
}

_SUB_DAILY = (Frequency.HOURLY, Frequency.MINUTELY, Frequency.SECONDLY)

Positions = tuple[Optional[int], Optional[int], Optional[int]]
PositionFn = Callable[[datetime], Positions]


def days_in_month(year: int, month: int) -> int:
    """Number of days in a month (1-based month)."""
    return calendar.monthrange(year, month)[1]


def days_in_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def day_of_year(value: date) -> int:
    return value.timetuple().tm_yday


def _week_one_start(year: int, first_day_of_week: int) -> date:
    # Week 1 is the first week holding 4 January
    jan4 = date(year, 1, 4)
    return jan4 - timedelta(days=(jan4.weekday() - first_day_of_week) % 7)


def week_number(value: date, first_day_of_week: int = 0) -> int:
    """Week of the year, ISO 8601 style but with a configurable week start.

    With Monday as first day this equals ``value.isocalendar().week``.
    """
    if isinstance(value, datetime):
        value = value.date()
    week = (value - _week_one_start(value.year, first_day_of_week)).days // 7 + 1
    if week < 1:
        return week_number(date(value.year - 1, 12, 31), first_day_of_week)
    if week > 52 and value >= _week_one_start(value.year + 1, first_day_of_week):
        return 1
    return week


def weeks_in_year(year: int, first_day_of_week: int = 0) -> int:
    weeks = week_number(date(year, 12, 31), first_day_of_week)
    return 52 if weeks == 1 else weeks


# --- Position functions ---
#
# Each returns (forward position, position from the end of the period, None)
# and a candidate survives a filter when any of them is an allowed value.


def month_positions(candidate: datetime) -> Positions:
    return candidate.month - 1, None, None


def month_day_positions(candidate: datetime) -> Positions:
    total = days_in_month(candidate.year, candidate.month) + 1
    return candidate.day, candidate.day - total, None


def weekday_positions(candidate: datetime) -> Positions:
    return candidate.weekday(), None, None


def monthly_weekday_positions(candidate: datetime) -> Positions:
    """Positions for selectors such as "2nd Monday" or "last Friday" of a month."""
    day = candidate.weekday()
    month_day = candidate.day
    occurrence = (month_day - 1) // 7 + 1
    in_month = occurrence + (days_in_month(candidate.year, candidate.month) - month_day) // 7
    return day, day + 7 * occurrence, day + 7 * (occurrence - in_month - 1)


def yearly_weekday_positions(candidate: datetime) -> Positions:
    """Positions for selectors such as "20th Monday" of a year."""
    day = candidate.weekday()
    year_day = day_of_year(candidate)
    occurrence = (year_day - 1) // 7 + 1
    in_year = occurrence + (days_in_year(candidate.year) - year_day) // 7
    return day, day + 7 * occurrence, day + 7 * (occurrence - in_year - 1)


def year_day_positions(candidate: datetime) -> Positions:
    year_day = day_of_year(candidate)
    return year_day, year_day - (days_in_year(candidate.year) + 1), None


def week_no_positions(first_day_of_week: int) -> PositionFn:
    def positions(candidate: datetime) -> Positions:
        week = week_number(candidate, first_day_of_week)
        return week, week - (weeks_in_year(candidate.year, first_day_of_week) + 1), None

    return positions


def filter_candidates(
    candidates: list[datetime], positions: PositionFn, allowed: Iterable[int]
) -> list[datetime]:
    """Keep candidates having at least one position in ``allowed``."""
    allowed_set = set(allowed)
    return [
        candidate
        for candidate in candidates
        if any(value is not None and value in allowed_set for value in positions(candidate))
    ]


def select_positions(candidates: list[datetime], allowed: Iterable[int]) -> list[datetime]:
    """Apply bySetPosition across a whole cycle (1-based, negatives count from the end)."""
    allowed_set = set(allowed)
    total = len(candidates)
    return [
        candidate
        for index, candidate in enumerate(candidates)
        if index + 1 in allowed_set or index - total in allowed_set
    ]


def _expand(candidates: list[datetime], unit: str, values: Iterable[int]) -> list[datetime]:
    values = [value for value in values if value < 60]
    return [candidate.replace(**{unit: value}) for candidate in candidates for value in values]


def advance_anchor(anchor: datetime, frequency: Frequency, interval: int) -> datetime:
    """Move an anchor forward one interval, carrying calendar overflow."""
    year, month0, day = anchor.year, anchor.month - 1, anchor.day
    hour, minute, second = anchor.hour, anchor.minute, anchor.second
    if frequency == Frequency.YEARLY:
        year += interval
    elif frequency == Frequency.MONTHLY:
        month0 += interval
    elif frequency == Frequency.WEEKLY:
        day += 7 * interval
    elif frequency == Frequency.DAILY:
        day += interval
    elif frequency == Frequency.HOURLY:
        hour += interval
    elif frequency == Frequency.MINUTELY:
        minute += interval
    else:
        second += interval
    return make_datetime(year, month0, day, hour, minute, second)


def _period_candidates(
    rule: RuleSpec,
    anchor: datetime,
    by_hour: Optional[tuple[int, ...]],
    by_minute: Optional[tuple[int, ...]],
    by_second: Optional[tuple[int, ...]],
) -> list[datetime]:
    frequency = rule.frequency
    # Sub-daily frequencies filter their own time fields here instead of expanding
    if frequency == Frequency.SECONDLY and by_second and anchor.second not in by_second:
        return []
    if frequency in (Frequency.SECONDLY, Frequency.MINUTELY):
        if by_minute and anchor.minute not in by_minute:
            return []
    if frequency in _SUB_DAILY and by_hour and anchor.hour not in by_hour:
        return []

    if frequency == Frequency.WEEKLY:
        offset = (anchor.weekday() - rule.first_day_of_week) % 7
        first = anchor - timedelta(days=offset)
        return [first + timedelta(days=i) for i in range(7)]
    if frequency == Frequency.MONTHLY:
        return [
            anchor.replace(day=day)
            for day in range(1, days_in_month(anchor.year, anchor.month) + 1)
        ]
    if frequency == Frequency.YEARLY:
        first = anchor.replace(month=1, day=1)
        return [first + A_DAY * i for i in range(days_in_year(anchor.year))]
    return [anchor]


def iterate_cycle(
    rule: RuleSpec,
    anchor: datetime,
    start: datetime,
    complex_anchor: bool = False,
) -> tuple[Optional[list[datetime]], datetime]:
    """Produce the candidates of the next non-empty cycle.

    Args:
        rule: Recurrence rule
        anchor: Start of the cycle to examine
        start: Series start, used to synthesize restrictions for complex anchors
        complex_anchor: True when the start day may not exist in every cycle
            (day 29-31 of a monthly rule, or 29 February of a yearly one)

    Returns:
        (candidates, next anchor). Candidates are sorted and may fall before
        ``anchor``. They are None when the attempt ceiling was exhausted
        without finding any.
    """
    frequency = rule.frequency
    interval = rule.interval

    by_day = rule.by_day
    by_month_day = rule.by_month_day
    by_month = rule.by_month
    by_year_day = rule.by_year_day
    by_week_no = rule.by_week_no
    by_hour = rule.by_hour
    by_minute = rule.by_minute
    by_second = rule.by_second
    by_set_position = rule.by_set_position

    # Restrictions that make no sense for the frequency are ignored
    if frequency != Frequency.YEARLY:
        by_week_no = None
    if frequency == Frequency.WEEKLY:
        by_month_day = None
    if frequency in (Frequency.WEEKLY, Frequency.DAILY, Frequency.MONTHLY):
        by_year_day = None

    # Fill in restrictions implied by the anchor
    if frequency == Frequency.YEARLY:
        if by_month_day and not (by_month or by_day or by_year_day or by_week_no):
            if by_month_day == (anchor.day,):
                by_month_day = None
            else:
                by_month = (anchor.month - 1,)
        if by_month and not (by_month_day or by_day or by_year_day or by_week_no):
            by_month_day = (anchor.day,)
    if frequency == Frequency.MONTHLY and by_month and not (by_month_day or by_day):
        by_month_day = (anchor.day,)
    if frequency == Frequency.WEEKLY and by_month and not by_day:
        by_day = (anchor.weekday(),)

    # The anchor is day 1 of the period, so the start day must be matched explicitly
    if complex_anchor and not (by_day or by_month_day or by_month or by_year_day or by_week_no):
        by_month_day = (start.day,)
        if frequency == Frequency.YEARLY:
            by_month = (start.month - 1,)

    use_fast_path = not (by_day or by_month_day or by_month or by_year_day or by_week_no)
    if frequency == Frequency.SECONDLY and by_second:
        use_fast_path = False
    if frequency in (Frequency.SECONDLY, Frequency.MINUTELY) and by_minute:
        use_fast_path = False
    if frequency in _SUB_DAILY and by_hour:
        use_fast_path = False

    for _ in range(MAX_ATTEMPTS[frequency]):
        if use_fast_path:
            candidates = [anchor]
        else:
            candidates = _period_candidates(rule, anchor, by_hour, by_minute, by_second)

            if by_month:
                candidates = filter_candidates(candidates, month_positions, by_month)
            if by_month_day:
                candidates = filter_candidates(candidates, month_day_positions, by_month_day)
            if by_day:
                if frequency != Frequency.MONTHLY and (frequency != Frequency.YEARLY or by_week_no):
                    positions = weekday_positions
                elif frequency == Frequency.MONTHLY or by_month:
                    positions = monthly_weekday_positions
                else:
                    positions = yearly_weekday_positions
                candidates = filter_candidates(candidates, positions, by_day)
            if by_year_day:
                candidates = filter_candidates(candidates, year_day_positions, by_year_day)
            if by_week_no:
                candidates = filter_candidates(
                    candidates, week_no_positions(rule.first_day_of_week), by_week_no
                )

        if by_hour and frequency not in _SUB_DAILY:
            candidates = _expand(candidates, "hour", [hour for hour in by_hour if hour < 24])
        if by_minute and frequency not in (Frequency.MINUTELY, Frequency.SECONDLY):
            candidates = _expand(candidates, "minute", by_minute)
        if by_second and frequency != Frequency.SECONDLY:
            candidates = _expand(candidates, "second", by_second)
        if by_set_position:
            candidates = select_positions(candidates, by_set_position)

        anchor = advance_anchor(anchor, frequency, interval)

        if candidates:
            return candidates, anchor

    logger.debug(
        "No %s candidates within %d cycles; series exhausted at %s",
        frequency.value,
        MAX_ATTEMPTS[frequency],
        anchor,
    )
    return None, anchor
