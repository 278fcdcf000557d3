"""Date-key, duration and timezone helpers for recurrence_lite.

All date-times handled by the engine are naive wall-clock values with
second precision. The timezone they belong to travels separately as an IANA
name (or None for floating times) and is only consulted when converting
between an event's own zone and a view zone.
"""

import logging
import re
from datetime import UTC, date, datetime, time, timedelta
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from icalendar import vDuration

from .lite_exceptions import InvalidDateKeyError

logger = logging.getLogger(__name__)

A_SECOND = timedelta(seconds=1)
A_DAY = timedelta(days=1)

_DATE_KEY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})$")

def to_date_key(dt: datetime) -> str:
    """Format a date-time as a fixed-width date-key.

    Keys are zero-padded so that plain string comparison orders them
    chronologically.

    Examples:
        >>> to_date_key(datetime(2024, 1, 5, 9, 30))
        '2024-01-05T09:30:00'
    """
    return (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
        f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"
    )


def from_date_key(key: str) -> datetime:
    """Parse a date-key back into a naive datetime.

    Raises:
        InvalidDateKeyError: If the key is malformed or names an impossible date
    """
    match = _DATE_KEY_RE.match(key) if isinstance(key, str) else None
    if match is None:
        raise InvalidDateKeyError(f"Invalid date-key: {key!r}")
    try:
        return datetime(*(int(part) for part in match.groups()))
    except ValueError as exc:
        raise InvalidDateKeyError(f"Invalid date-key: {key!r}") from exc


def make_datetime(
    year: int, month0: int, day: int, hour: int = 0, minute: int = 0, second: int = 0
) -> datetime:
    """Build a datetime from possibly out-of-range fields.

    The month is zero-based. Overflowing fields carry into the next larger
    unit, so day 32 of January is 1 February and month 12 is January of the
    following year.
    """
    year += month0 // 12
    month0 %= 12
    return datetime(year, month0 + 1, 1) + timedelta(
        days=day - 1, hours=hour, minutes=minute, seconds=second
    )


def start_of_day(dt: datetime) -> datetime:
    """Truncate a datetime to midnight of the same day."""
    return datetime.combine(dt.date(), time())


def days_covered(start: datetime, end: datetime) -> list[date]:
    """Return the days an interval touches.

    The start day is always included; each following day is included while
    its midnight falls before ``end``. A zero-length interval covers one day.
    """
    days = [start.date()]
    cursor = start_of_day(start) + A_DAY
    while cursor < end:
        days.append(cursor.date())
        cursor += A_DAY
    return days


def parse_duration(value: Optional[str]) -> timedelta:
    """Parse an ISO 8601 duration such as ``PT1H30M`` or ``-P1W``.

    Unparsable or empty input yields a zero duration.
    """
    if not value:
        return timedelta(0)
    try:
        return vDuration.from_ical(value)
    except ValueError:
        logger.warning("Unparsable duration %r; using zero", value)
        return timedelta(0)


def format_duration(duration: timedelta) -> str:
    """Format a timedelta as an ISO 8601 duration.

    Whole numbers of days are written in weeks or days; anything else is
    written in hours, minutes and seconds, since a timed duration is not
    subject to daylight-saving discontinuities.

    Examples:
        >>> format_duration(timedelta(days=14))
        'P2W'
        >>> format_duration(timedelta(hours=1, minutes=30))
        'PT1H30M'
    """
    total = int(duration.total_seconds())
    output = "P"
    if total < 0:
        total = -total
        output = "-P"

    if total >= 86400 and total % 86400 == 0:
        days = total // 86400
        if days % 7 == 0:
            return f"{output}{days // 7}W"
        return f"{output}{days}D"

    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    output += "T"
    if hours:
        output += f"{hours}H"
    if minutes:
        output += f"{minutes}M"
    if seconds or not (hours or minutes):
        output += f"{seconds}S"
    return output


class TimeZoneConverter(Protocol):
    """Local/UTC mapping service consumed by the engine."""

    def to_utc(self, local: datetime, time_zone: Optional[str]) -> datetime:
        """Convert a naive wall-clock time in ``time_zone`` to naive UTC."""
        ...

    def from_utc(self, utc: datetime, time_zone: Optional[str]) -> datetime:
        """Convert a naive UTC time to naive wall-clock time in ``time_zone``."""
        ...


class ZoneInfoConverter:
    """TimeZoneConverter backed by the standard zoneinfo database.

    Unknown zone names are treated as floating time (no conversion) and
    logged once.
    """

    def __init__(self) -> None:
        self._zones: dict[str, Optional[ZoneInfo]] = {}

    def _zone(self, time_zone: Optional[str]) -> Optional[ZoneInfo]:
        if not time_zone:
            return None
        if time_zone not in self._zones:
            try:
                self._zones[time_zone] = ZoneInfo(time_zone)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning("Unknown timezone %r; treating as floating time", time_zone)
                self._zones[time_zone] = None
        return self._zones[time_zone]

    def to_utc(self, local: datetime, time_zone: Optional[str]) -> datetime:
        zone = self._zone(time_zone)
        if zone is None:
            return local
        return local.replace(tzinfo=zone).astimezone(UTC).replace(tzinfo=None)

    def from_utc(self, utc: datetime, time_zone: Optional[str]) -> datetime:
        zone = self._zone(time_zone)
        if zone is None:
            return utc
        return utc.replace(tzinfo=UTC).astimezone(zone).replace(tzinfo=None)


DEFAULT_CONVERTER = ZoneInfoConverter()


def convert_wall_time(
    dt: datetime,
    from_time_zone: Optional[str],
    to_time_zone: Optional[str],
    converter: Optional[TimeZoneConverter] = None,
) -> datetime:
    """Re-express a wall-clock time from one zone in another.

    Floating times (either zone None) and same-zone conversions are returned
    unchanged.
    """
    if not from_time_zone or not to_time_zone or from_time_zone == to_time_zone:
        return dt
    converter = converter or DEFAULT_CONVERTER
    return converter.from_utc(converter.to_utc(dt, from_time_zone), to_time_zone)


def start_in_time_zone(
    start: datetime,
    event_time_zone: Optional[str],
    view_time_zone: Optional[str],
    converter: Optional[TimeZoneConverter] = None,
) -> datetime:
    """Start of an event as seen from ``view_time_zone``."""
    return convert_wall_time(start, event_time_zone, view_time_zone, converter)


def end_in_time_zone(
    start: datetime,
    duration: timedelta,
    event_time_zone: Optional[str],
    view_time_zone: Optional[str],
    converter: Optional[TimeZoneConverter] = None,
) -> datetime:
    """End of an event as seen from ``view_time_zone``.

    The duration is elapsed time, so it is added in UTC. With no view zone
    the end is expressed in the event's own zone.
    """
    if not event_time_zone:
        return start + duration
    converter = converter or DEFAULT_CONVERTER
    utc_end = converter.to_utc(start, event_time_zone) + duration
    return converter.from_utc(utc_end, view_time_zone or event_time_zone)
