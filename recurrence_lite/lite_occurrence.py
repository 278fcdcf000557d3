"""Occurrence views and their identity-stable cache."""

from __future__ import annotations

import logging
import threading
from bisect import bisect_left
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional

from .lite_datetime_utils import (
    DEFAULT_CONVERTER,
    TimeZoneConverter,
    end_in_time_zone,
    from_date_key,
    start_in_time_zone,
)
from .lite_exception_overlay import field_name, occurrence_overrides, resolve_field
from .lite_models import participant_entry, rsvp_changes
from .lite_occurrence_expander import all_start_dates, expand_event

if TYPE_CHECKING:
    from .lite_event_series import EventSeries

logger = logging.getLogger(__name__)

# Overridden fields that on their own do not make an occurrence an organizer exception
_PERSONAL_FIELDS = frozenset({"alerts", "use_default_alerts"})


def _override_property(field: str, doc: str) -> property:
    def getter(self: Occurrence) -> Any:
        return self.get(field)

    def setter(self: Occurrence, value: Any) -> None:
        self.set(field, value)

    return property(getter, setter, doc=doc)


class Occurrence:
    """One instance of a recurring series, addressed by its date-key.

    Occurrences hold no state of their own: every read resolves the override
    for this date-key, falling back to the series value, and every write is
    recorded as an override on the owning :class:`EventSeries`.
    """

    __slots__ = ("_date_key", "_original_start", "_series")

    def __init__(self, series: EventSeries, date_key: str) -> None:
        self._series = series
        self._date_key = date_key
        self._original_start = from_date_key(date_key)

    def __repr__(self) -> str:
        return f"Occurrence({self.event_id!r}, {self._date_key!r})"

    # --- Identity ---

    @property
    def series(self) -> EventSeries:
        return self._series

    @property
    def event_id(self) -> str:
        return self._series.event.id

    @property
    def date_key(self) -> str:
        return self._date_key

    @property
    def original_start(self) -> datetime:
        """Start time the rule assigned to this occurrence, before overrides."""
        return self._original_start

    @property
    def uid(self) -> str:
        return self._series.event.uid

    @property
    def calendar_id(self) -> Optional[str]:
        return self._series.event.calendar_id

    @property
    def is_all_day(self) -> bool:
        return self._series.event.is_all_day

    @property
    def participant_id(self) -> Optional[str]:
        return self._series.event.participant_id

    # --- Overridable attributes ---

    title = _override_property("title", "Occurrence title.")
    description = _override_property("description", "Occurrence description.")
    locations = _override_property("locations", "Locations keyed by id.")
    links = _override_property("links", "Links keyed by id.")
    translations = _override_property("translations", "Translations keyed by locale.")
    start = _override_property("start", "Wall-clock start in ``time_zone``.")
    duration = _override_property("duration", "Occurrence duration.")
    time_zone = _override_property("time_zone", "Timezone of ``start``; None for floating.")
    status = _override_property("status", "Scheduling status.")
    free_busy_status = _override_property("free_busy_status", "Free/busy status.")
    participants = _override_property("participants", "Participants keyed by id.")
    use_default_alerts = _override_property("use_default_alerts", "Use the calendar's alerts.")
    alerts = _override_property("alerts", "Alerts keyed by id.")

    def get(self, field: str) -> Any:
        """Effective value of an overridable field."""
        return resolve_field(self._series.event, self._date_key, field)

    def set(self, field: str, value: Any) -> None:
        """Override a field for this occurrence only."""
        self._series.set_occurrence_fields(self._date_key, {field: value})

    def remove(self) -> None:
        """Remove this occurrence from its series."""
        self._series.remove_occurrence(self._date_key)

    @property
    def overrides(self) -> dict[str, Any]:
        """The raw override entry (empty when nothing is overridden)."""
        return dict(occurrence_overrides(self._series.event, self._date_key))

    @property
    def is_removed(self) -> bool:
        overrides = self._series.event.recurrence_overrides or {}
        return self._date_key in overrides and overrides[self._date_key] is None

    # --- Derived values ---

    @property
    def location(self) -> str:
        locations = self.locations
        if not locations:
            return ""
        return (next(iter(locations.values())) or {}).get("name") or ""

    def get_start_in_time_zone(
        self, time_zone: Optional[str], converter: Optional[TimeZoneConverter] = None
    ) -> datetime:
        return start_in_time_zone(self.start, self.time_zone, time_zone, converter)

    def get_end_in_time_zone(
        self, time_zone: Optional[str], converter: Optional[TimeZoneConverter] = None
    ) -> datetime:
        return end_in_time_zone(self.start, self.duration, self.time_zone, time_zone, converter)

    @property
    def end(self) -> datetime:
        return self.get_end_in_time_zone(None)

    @property
    def utc_start(self) -> datetime:
        return DEFAULT_CONVERTER.to_utc(self.start, self.time_zone)

    @property
    def utc_end(self) -> datetime:
        duration: timedelta = self.duration
        return self.utc_start + duration

    @property
    def index(self) -> int:
        """Zero-based position of this occurrence within its series."""
        event = self._series.event
        if self.start == event.start:
            return 0
        rule = event.recurrence_rule
        if rule is None or rule.is_bounded:
            return bisect_left(all_start_dates(event, self._series.config), self._original_start)
        earlier = expand_event(event, None, self._original_start, self._series.config)
        return sum(1 for when in earlier if when < self._original_start)

    # --- RSVP ---

    def _is_organizer_exception(self) -> bool:
        return any(field_name(key) not in _PERSONAL_FIELDS for key in self.overrides)

    @property
    def rsvp(self) -> str:
        if self._is_organizer_exception():
            you = participant_entry(self.participants, self.participant_id)
            return (you or {}).get("scheduleStatus") or ""
        return self._series.event.rsvp

    def set_rsvp(self, rsvp: str) -> None:
        """Record the owner's reply.

        An occurrence the organizer changed is answered on its own; any other
        reply applies to the whole series.
        """
        if not self._is_organizer_exception():
            self._series.set_rsvp(rsvp)
            return
        changes = rsvp_changes(self.participants, self.participant_id, rsvp, self.alerts)
        if changes:
            self._series.set_occurrence_fields(self._date_key, changes)


class OccurrenceCache:
    """Hands out one :class:`Occurrence` per (event id, date-key).

    Entries for an event are dropped when its start, timezone or rule change,
    since its date-keys then no longer name the same instances.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._occurrences: dict[tuple[str, str], Occurrence] = {}

    def get(self, series: EventSeries, date_key: str) -> Occurrence:
        key = (series.event.id, date_key)
        with self._lock:
            occurrence = self._occurrences.get(key)
            if occurrence is None or occurrence.series is not series:
                occurrence = Occurrence(series, date_key)
                self._occurrences[key] = occurrence
            return occurrence

    def invalidate_event(self, event_id: str) -> int:
        """Forget every occurrence of one event; returns how many were dropped."""
        with self._lock:
            stale = [key for key in self._occurrences if key[0] == event_id]
            for key in stale:
                del self._occurrences[key]
        if stale:
            logger.debug("Dropped %d cached occurrences of event %s", len(stale), event_id)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._occurrences.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._occurrences)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._occurrences
