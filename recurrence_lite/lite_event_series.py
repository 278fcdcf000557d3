"""Mutable owner of a recurring event and its per-occurrence overlay.

A :class:`RecurringEvent` is immutable; :class:`EventSeries` holds the current
version, applies edits atomically under a lock, and tells subscribers (the
date index, typically) which part of the series went stale.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .config_manager import ExpanderConfig
from .lite_datetime_utils import DEFAULT_CONVERTER, TimeZoneConverter, from_date_key, to_date_key
from .lite_exception_overlay import (
    apply_override,
    prune_overrides,
    remove_occurrence,
    restore_occurrence,
    shift_overrides,
)
from .lite_models import RecurringEvent
from .lite_occurrence import Occurrence, OccurrenceCache
from .lite_occurrence_expander import all_start_dates, occurrence_keys_in_range, total_occurrences

logger = logging.getLogger(__name__)

_MISSING = object()


class InvalidationKind(str, Enum):
    """How much of a series' indexed state a change made stale."""

    SERIES = "series"  # start, timezone or rule: every date-key may differ
    OVERLAY = "overlay"  # overrides or inclusions for the listed date-keys
    LAYOUT = "layout"  # duration or all-day flag: days spanned may differ
    ATTRIBUTES = "attributes"  # anything else: same days, different content


@dataclass(frozen=True)
class IndexInvalidation:
    """Change notice sent to series subscribers."""

    event_id: str
    kind: InvalidationKind
    date_keys: tuple[str, ...] = ()


Listener = Callable[[IndexInvalidation], None]


def _changed_override_keys(old: RecurringEvent, new: RecurringEvent) -> set[str]:
    old_overrides = old.recurrence_overrides or {}
    new_overrides = new.recurrence_overrides or {}
    return {
        key
        for key in old_overrides.keys() | new_overrides.keys()
        if old_overrides.get(key, _MISSING) != new_overrides.get(key, _MISSING)
    }


def classify_change(old: RecurringEvent, new: RecurringEvent) -> Optional[IndexInvalidation]:
    """Describe what an edit from ``old`` to ``new`` invalidates, if anything."""
    if (old.id, old.start, old.time_zone, old.recurrence_rule) != (
        new.id,
        new.start,
        new.time_zone,
        new.recurrence_rule,
    ):
        return IndexInvalidation(old.id, InvalidationKind.SERIES)
    keys = _changed_override_keys(old, new)
    keys.update(to_date_key(when) for when in set(old.inclusions) ^ set(new.inclusions))
    if keys:
        return IndexInvalidation(old.id, InvalidationKind.OVERLAY, tuple(sorted(keys)))
    if (old.duration, old.is_all_day) != (new.duration, new.is_all_day):
        return IndexInvalidation(old.id, InvalidationKind.LAYOUT)
    if old != new:
        return IndexInvalidation(old.id, InvalidationKind.ATTRIBUTES)
    return None


class EventSeries:
    """Current version of one event, with occurrence access and change notices."""

    def __init__(
        self,
        event: RecurringEvent,
        cache: Optional[OccurrenceCache] = None,
        config: Optional[ExpanderConfig] = None,
        converter: Optional[TimeZoneConverter] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._event = event
        self._listeners: list[Listener] = []
        self.cache = cache if cache is not None else OccurrenceCache()
        self.config = config or ExpanderConfig()
        self.converter = converter or DEFAULT_CONVERTER

    def __repr__(self) -> str:
        return f"EventSeries({self._event.id!r}, title={self._event.title!r})"

    @property
    def event(self) -> RecurringEvent:
        # Reads see either the old or the new version, never a partial edit
        return self._event

    @property
    def id(self) -> str:
        return self._event.id

    # --- Subscribers ---

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, invalidation: Optional[IndexInvalidation]) -> None:
        if invalidation is None:
            return
        with self._lock:
            listeners = list(self._listeners)
        logger.debug(
            "Series %s changed (%s, %d keys)",
            invalidation.event_id,
            invalidation.kind.value,
            len(invalidation.date_keys),
        )
        for listener in listeners:
            try:
                listener(invalidation)
            except Exception:
                logger.exception("Series listener failed for event %s", invalidation.event_id)

    def update(self, transform: Callable[[RecurringEvent], RecurringEvent]) -> RecurringEvent:
        """Swap in ``transform(current event)`` atomically and notify subscribers."""
        with self._lock:
            old = self._event
            new = transform(old)
            self._event = new
            invalidation = classify_change(old, new)
            if invalidation is not None and invalidation.kind is InvalidationKind.SERIES:
                self.cache.invalidate_event(old.id)
        self._notify(invalidation)
        return new

    # --- Occurrences ---

    def occurrence(self, date_key: str) -> Occurrence:
        """The cached occurrence view for ``date_key``.

        Raises:
            InvalidDateKeyError: If ``date_key`` is malformed
        """
        from_date_key(date_key)
        return self.cache.get(self, date_key)

    def occurrence_keys_in_range(
        self, begin: datetime, end: datetime, view_time_zone: Optional[str] = None
    ) -> list[str]:
        return occurrence_keys_in_range(
            self._event, begin, end, view_time_zone, self.converter, self.config
        )

    def occurrences_in_range(
        self, begin: datetime, end: datetime, view_time_zone: Optional[str] = None
    ) -> list[Occurrence]:
        """Occurrences overlapping [begin, end), in wall-clock time of ``view_time_zone``."""
        found = []
        for key in self.occurrence_keys_in_range(begin, end, view_time_zone):
            occurrence = self.occurrence(key)
            start = occurrence.get_start_in_time_zone(view_time_zone, self.converter)
            if start >= end:
                continue
            finish = occurrence.get_end_in_time_zone(view_time_zone, self.converter)
            if finish > begin or start >= begin:
                found.append((start, key, occurrence))
        found.sort(key=lambda item: item[:2])
        return [occurrence for _, _, occurrence in found]

    @property
    def all_start_dates(self) -> list[datetime]:
        return all_start_dates(self._event, self.config)

    @property
    def total_occurrences(self) -> float:
        """Occurrence count; ``math.inf`` for an unbounded series."""
        return total_occurrences(self._event, self.config)

    # --- Edits ---

    def replace(self, **changes: Any) -> RecurringEvent:
        """Replace series-level fields.

        Moving the start re-keys overrides and inclusions by the same amount,
        unless either is supplied in ``changes``. Dropping the rule drops both.
        """
        explicit_overlay = "recurrence_overrides" in changes or "inclusions" in changes

        def transform(old: RecurringEvent) -> RecurringEvent:
            new = old.evolve(**changes)
            if explicit_overlay:
                return prune_overrides(new, self.config)
            if "recurrence_rule" in changes and new.recurrence_rule is None:
                return new.evolve(recurrence_overrides=None, inclusions=())
            if new.start != old.start:
                new = shift_overrides(new, new.start - old.start)
            if new.recurrence_rule != old.recurrence_rule or new.start != old.start:
                new = prune_overrides(new, self.config)
            return new

        return self.update(transform)

    def set_occurrence_fields(self, date_key: str, changes: dict[str, Any]) -> RecurringEvent:
        """Override one or more fields of a single occurrence in one step."""

        def transform(old: RecurringEvent) -> RecurringEvent:
            new = old
            for field, value in changes.items():
                new = apply_override(new, date_key, field, value, self.config)
            return new

        return self.update(transform)

    def remove_occurrence(self, date_key: str) -> RecurringEvent:
        return self.update(lambda old: remove_occurrence(old, date_key))

    def restore_occurrence(self, date_key: str) -> RecurringEvent:
        return self.update(lambda old: restore_occurrence(old, date_key))

    def add_inclusion(self, when: datetime) -> RecurringEvent:
        """Add an extra occurrence that the rule does not generate."""
        return self.update(lambda old: old.evolve(inclusions=(*old.inclusions, when)))

    def remove_inclusion(self, when: datetime) -> RecurringEvent:
        key = to_date_key(when)

        def transform(old: RecurringEvent) -> RecurringEvent:
            kept = tuple(item for item in old.inclusions if to_date_key(item) != key)
            overrides = dict(old.recurrence_overrides or {})
            if overrides.get(key) is not None:
                # Its override would otherwise keep the extra occurrence alive
                del overrides[key]
            return prune_overrides(
                old.evolve(inclusions=kept, recurrence_overrides=overrides or None), self.config
            )

        return self.update(transform)

    def set_rsvp(self, rsvp: str) -> RecurringEvent:
        """Record the owner's reply for the whole series."""
        return self.update(lambda old: old.with_rsvp(rsvp))
