"""Day-bucketed index of event occurrences for calendar views.

Two sources feed the index. Non-recurring events are indexed once, in full.
Recurring events are only expanded inside a sliding window of days around
the dates queried so far; the window grows by a fixed margin when a query
lands just outside it and is rebuilt around a query that lands far away.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta
from typing import Optional

from .config_manager import ExpanderConfig
from .lite_datetime_utils import DEFAULT_CONVERTER, TimeZoneConverter, days_covered, to_date_key
from .lite_event_series import EventSeries, IndexInvalidation, InvalidationKind
from .lite_exceptions import UnknownSeriesError
from .lite_models import Calendar, ParticipationStatus, RecurringEvent
from .lite_occurrence import Occurrence, OccurrenceCache
from .lite_series_splitter import split_series

logger = logging.getLogger(__name__)

NO_EVENTS: tuple[Occurrence, ...] = ()

# all_day filter values
TIMED_OR_ALL_DAY = 0
ALL_DAY_ONLY = 1
TIMED_ONLY = -1

Predicate = Callable[[Occurrence], bool]


def _as_day(value: date) -> date:
    return value.date() if isinstance(value, datetime) else value


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time())


class _BucketSource:
    """Occurrences grouped by the view-timezone days they touch."""

    def __init__(self) -> None:
        self.buckets: dict[date, list[Occurrence]] = {}
        self.event_days: dict[str, set[date]] = {}

    def clear(self) -> None:
        self.buckets.clear()
        self.event_days.clear()

    def _add(
        self,
        occurrence: Occurrence,
        time_zone: Optional[str],
        converter: TimeZoneConverter,
        lower: Optional[date] = None,
        upper: Optional[date] = None,
    ) -> None:
        start = occurrence.get_start_in_time_zone(time_zone, converter)
        end = occurrence.get_end_in_time_zone(time_zone, converter)
        days = self.event_days.setdefault(occurrence.event_id, set())
        for day in days_covered(start, end):
            if (lower is None or lower <= day) and (upper is None or day < upper):
                self.buckets.setdefault(day, []).append(occurrence)
                days.add(day)

    def remove_event(self, event_id: str) -> set[date]:
        """Drop every occurrence of an event; returns the days it was in."""
        days = self.event_days.pop(event_id, set())
        for day in days:
            kept = [
                occurrence
                for occurrence in self.buckets.get(day, ())
                if occurrence.event_id != event_id
            ]
            if kept:
                self.buckets[day] = kept
            else:
                self.buckets.pop(day, None)
        return days


class NonRecurringEventIndex(_BucketSource):
    """Full index of single-occurrence events, built on first use."""

    def __init__(self) -> None:
        super().__init__()
        self.is_built = False

    def clear(self) -> None:
        super().clear()
        self.is_built = False

    def build(
        self, series: Iterable[EventSeries], time_zone: Optional[str], converter: TimeZoneConverter
    ) -> None:
        super().clear()
        for item in series:
            self.index_series(item, time_zone, converter)
        self.is_built = True
        logger.debug("Indexed %d non-recurring events", len(self.event_days))

    def index_series(
        self, series: EventSeries, time_zone: Optional[str], converter: TimeZoneConverter
    ) -> None:
        self._add(series.occurrence(to_date_key(series.event.start)), time_zone, converter)


class RecurringEventIndex(_BucketSource):
    """Index of recurring events over the window [start, end) of days."""

    def __init__(self, days_before: int, days_after: int) -> None:
        super().__init__()
        self.days_before = days_before
        self.days_after = days_after
        self.start: Optional[date] = None
        self.end: Optional[date] = None

    def clear(self) -> None:
        super().clear()
        self.start = self.end = None

    def covers(self, day: date) -> bool:
        return self.start is not None and self.start <= day < self.end

    def ensure(
        self,
        day: date,
        series: list[EventSeries],
        time_zone: Optional[str],
        converter: TimeZoneConverter,
    ) -> bool:
        """Make ``day`` part of the window.

        Returns:
            True when the window was rebuilt from scratch
        """
        if self.covers(day):
            return False
        before = timedelta(days=self.days_before)
        after = timedelta(days=self.days_after)
        rebuilt = False
        if self.start is not None and self.start - before <= day < self.start:
            lower, upper = self.start - before, self.start
            self.start = lower
        elif self.end is not None and self.end <= day < self.end + after:
            lower, upper = self.end, self.end + after
            self.end = upper
        else:
            super().clear()
            lower, upper = day - before, day + after
            self.start, self.end = lower, upper
            rebuilt = True

        logger.debug(
            "%s recurring index with %s to %s",
            "Rebuilding" if rebuilt else "Extending",
            lower,
            upper,
        )
        for item in series:
            self._index_range(item, lower, upper, time_zone, converter)
        return rebuilt

    def index_series(
        self, series: EventSeries, time_zone: Optional[str], converter: TimeZoneConverter
    ) -> None:
        if self.start is not None:
            self._index_range(series, self.start, self.end, time_zone, converter)

    def _index_range(
        self,
        series: EventSeries,
        lower: date,
        upper: date,
        time_zone: Optional[str],
        converter: TimeZoneConverter,
    ) -> None:
        self.event_days.setdefault(series.id, set())
        for key in series.occurrence_keys_in_range(_midnight(lower), _midnight(upper), time_zone):
            self._add(series.occurrence(key), time_zone, converter, lower, upper)


class DateBucketIndex:
    """Answers "what happens on day D" over a set of event series.

    Results are filtered (hidden calendars, declined events unless shown,
    all-day vs timed, an optional caller predicate), sorted by start in the
    view timezone, and cached per (day, all-day filter) until something they
    depend on changes. Subscribed series report their own edits through
    :meth:`handle_invalidation`.
    """

    def __init__(
        self,
        series: Iterable[EventSeries] = (),
        calendars: Optional[Iterable[Calendar]] = None,
        time_zone: Optional[str] = None,
        config: Optional[ExpanderConfig] = None,
        converter: Optional[TimeZoneConverter] = None,
        where: Optional[Predicate] = None,
    ) -> None:
        self._lock = threading.RLock()
        self.config = config or ExpanderConfig()
        self.converter = converter or DEFAULT_CONVERTER
        self.cache = OccurrenceCache()
        self._time_zone = time_zone if time_zone is not None else self.config.default_time_zone
        self._show_declined = self.config.show_declined
        self._where = where
        self._calendars: dict[str, Calendar] = {
            calendar.id: calendar for calendar in calendars or ()
        }
        self._series: dict[str, EventSeries] = {}
        self._non_recurring = NonRecurringEventIndex()
        self._recurring = RecurringEventIndex(
            self.config.index_days_before, self.config.index_days_after
        )
        self._results: dict[tuple[date, int], tuple[Occurrence, ...]] = {}
        for item in series:
            self.add_series(item)

    # --- Series registry ---

    def add_event(self, event: RecurringEvent) -> EventSeries:
        """Wrap an event in a series sharing this index's cache and settings, and add it."""
        return self.add_series(EventSeries(event, self.cache, self.config, self.converter))

    def add_series(self, series: EventSeries) -> EventSeries:
        with self._lock:
            previous = self._series.get(series.id)
            if previous is not None and previous is not series:
                previous.unsubscribe(self.handle_invalidation)
            self._series[series.id] = series
            series.subscribe(self.handle_invalidation)
            self._reindex(series.id)
        return series

    def remove_series(self, event_id: str) -> EventSeries:
        """Stop indexing a series.

        Raises:
            UnknownSeriesError: If no series has that id
        """
        with self._lock:
            series = self.get_series(event_id)
            series.unsubscribe(self.handle_invalidation)
            del self._series[event_id]
            self._reindex(event_id)
            series.cache.invalidate_event(event_id)
        return series

    def get_series(self, event_id: str) -> EventSeries:
        with self._lock:
            try:
                return self._series[event_id]
            except KeyError:
                raise UnknownSeriesError(event_id) from None

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._series

    def __len__(self) -> int:
        return len(self._series)

    def split_series(self, event_id: str, date_key: str) -> Optional[EventSeries]:
        """Split a series at an occurrence and index the new successor, if any."""
        successor = split_series(self.get_series(event_id), date_key)
        if successor is not None:
            self.add_series(successor)
        return successor

    # --- View settings ---

    @property
    def time_zone(self) -> Optional[str]:
        return self._time_zone

    @time_zone.setter
    def time_zone(self, value: Optional[str]) -> None:
        with self._lock:
            if value != self._time_zone:
                self._time_zone = value
                self.clear_indexes()

    @property
    def show_declined(self) -> bool:
        return self._show_declined

    @show_declined.setter
    def show_declined(self, value: bool) -> None:
        with self._lock:
            if value != self._show_declined:
                self._show_declined = value
                self._results.clear()

    @property
    def where(self) -> Optional[Predicate]:
        return self._where

    @where.setter
    def where(self, predicate: Optional[Predicate]) -> None:
        with self._lock:
            self._where = predicate
            self._results.clear()

    def set_calendars(self, calendars: Iterable[Calendar]) -> None:
        with self._lock:
            self._calendars = {calendar.id: calendar for calendar in calendars}
            self._results.clear()

    def set_calendar_visibility(self, calendar_id: str, is_visible: bool) -> None:
        with self._lock:
            calendar = self._calendars.get(calendar_id) or Calendar(id=calendar_id)
            self._calendars[calendar_id] = calendar.model_copy(update={"is_visible": is_visible})
            self._results.clear()

    def clear_indexes(self) -> None:
        """Forget all indexed occurrences and cached results."""
        with self._lock:
            self._non_recurring.clear()
            self._recurring.clear()
            self._results.clear()

    # --- Invalidation ---

    def handle_invalidation(self, invalidation: IndexInvalidation) -> None:
        """Bring the index up to date after a series changed.

        Safe to call repeatedly with the same notice.
        """
        with self._lock:
            if invalidation.event_id not in self._series:
                return
            if invalidation.kind is InvalidationKind.SERIES:
                self.clear_indexes()
            elif invalidation.kind is InvalidationKind.ATTRIBUTES:
                self._drop_results(self._days_of(invalidation.event_id))
            else:
                self._reindex(invalidation.event_id)

    def _days_of(self, event_id: str) -> set[date]:
        return self._non_recurring.event_days.get(event_id, set()) | self._recurring.event_days.get(
            event_id, set()
        )

    def _drop_results(self, days: set[date]) -> None:
        for key in [key for key in self._results if key[0] in days]:
            del self._results[key]

    def _reindex(self, event_id: str) -> None:
        days = self._non_recurring.remove_event(event_id) | self._recurring.remove_event(event_id)
        series = self._series.get(event_id)
        if series is not None:
            if series.event.is_recurring:
                self._recurring.index_series(series, self._time_zone, self.converter)
            elif self._non_recurring.is_built:
                self._non_recurring.index_series(series, self._time_zone, self.converter)
            days |= self._days_of(event_id)
        self._drop_results(days)

    # --- Queries ---

    def _is_shown(self, occurrence: Occurrence, all_day: int) -> bool:
        calendar = self._calendars.get(occurrence.calendar_id) if occurrence.calendar_id else None
        if calendar is not None and not calendar.is_visible:
            return False
        if not self._show_declined and occurrence.rsvp == ParticipationStatus.DECLINED.value:
            return False
        if all_day and occurrence.is_all_day != (all_day > 0):
            return False
        return self._where is None or bool(self._where(occurrence))

    def get_events_for_date(
        self, day: date, all_day: int = TIMED_OR_ALL_DAY
    ) -> tuple[Occurrence, ...]:
        """Occurrences touching ``day`` in the view timezone, sorted by start.

        Args:
            day: Day to look up (a datetime is truncated to its date)
            all_day: TIMED_OR_ALL_DAY, ALL_DAY_ONLY or TIMED_ONLY

        Returns:
            The visible occurrences, or NO_EVENTS
        """
        day = _as_day(day)
        with self._lock:
            cached = self._results.get((day, all_day))
            if cached is not None:
                return cached

            if not self._non_recurring.is_built:
                self._non_recurring.build(
                    [series for series in self._series.values() if not series.event.is_recurring],
                    self._time_zone,
                    self.converter,
                )
            if not self._recurring.covers(day):
                recurring = [
                    series for series in self._series.values() if series.event.is_recurring
                ]
                if self._recurring.ensure(day, recurring, self._time_zone, self.converter):
                    # Cached days may now lie outside the window
                    self._results.clear()

            candidates = self._non_recurring.buckets.get(day, []) + self._recurring.buckets.get(
                day, []
            )
            shown = [occurrence for occurrence in candidates if self._is_shown(occurrence, all_day)]
            time_zone, converter = self._time_zone, self.converter
            shown.sort(
                key=lambda occurrence: (
                    occurrence.get_start_in_time_zone(time_zone, converter),
                    occurrence.event_id,
                    occurrence.date_key,
                )
            )
            results = tuple(shown) or NO_EVENTS
            self._results[(day, all_day)] = results
            return results

    def get_events_in_range(
        self, begin: date, end: date, all_day: int = TIMED_OR_ALL_DAY
    ) -> dict[date, tuple[Occurrence, ...]]:
        """Non-empty days in [begin, end), in order, with their occurrences."""
        day, end = _as_day(begin), _as_day(end)
        found: dict[date, tuple[Occurrence, ...]] = {}
        while day < end:
            events = self.get_events_for_date(day, all_day)
            if events:
                found[day] = events
            day += timedelta(days=1)
        return found

    def find_non_empty_date(
        self, day: date, step: int = 1, all_day: int = TIMED_OR_ALL_DAY
    ) -> Optional[date]:
        """Nearest day after ``day`` (before it, for a negative step) with visible events.

        Gives up after ``config.non_empty_scan_days`` days and returns None.
        """
        if not step:
            raise ValueError("step must be non-zero")
        day = _as_day(day)
        delta = timedelta(days=step)
        for _ in range(self.config.non_empty_scan_days):
            day += delta
            if self.get_events_for_date(day, all_day):
                return day
        return None
