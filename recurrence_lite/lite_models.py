"""Data models for recurring calendar events - recurrence_lite version."""

import logging
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from .lite_datetime_utils import (
    DEFAULT_CONVERTER,
    TimeZoneConverter,
    end_in_time_zone,
    format_duration,
    from_date_key,
    parse_duration,
    start_in_time_zone,
    to_date_key,
)
from .lite_rule_spec import RuleSpec

logger = logging.getLogger(__name__)

RELATION_FIRST = "first"
RELATION_NEXT = "next"


class EventStatus(str, Enum):
    """Scheduling status of an event."""

    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    CANCELLED = "cancelled"


class ParticipationStatus(str, Enum):
    """RSVP values for the calendar owner's participant entry."""

    NEEDS_ACTION = "needs-action"
    ACCEPTED = "accepted"
    TENTATIVE = "tentative"
    DECLINED = "declined"


class Calendar(BaseModel):
    """A calendar that events belong to."""

    id: str
    name: str = ""
    is_visible: bool = True
    may_write: bool = True

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


def _new_event_id() -> str:
    return uuid4().hex


def _new_uid() -> str:
    return str(uuid4())


def _as_naive_datetime(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return from_date_key(value)
        except ValueError:
            return _as_naive_datetime(datetime.fromisoformat(value))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            logger.debug("Dropping tzinfo from %s; wall-clock time is kept", value)
        return value.replace(tzinfo=None, microsecond=0)
    if isinstance(value, date):
        return datetime.combine(value, time())
    return value


class RecurringEvent(BaseModel):
    """Immutable calendar event with an optional recurrence.

    ``start`` is a naive wall-clock time in ``time_zone`` (None means floating
    time). Edits produce new instances via :meth:`evolve`; owned, mutable
    state lives in :class:`recurrence_lite.lite_event_series.EventSeries`.

    ``recurrence_overrides`` maps a date-key to either None (the occurrence is
    removed) or a sparse patch keyed by wire field name, where structured
    fields may be patched leaf by leaf (``"locations/1/name"``).
    """

    # Identity
    id: str = Field(default_factory=_new_event_id)
    uid: str = Field(default_factory=_new_uid)
    calendar_id: Optional[str] = None
    related_to: Optional[dict[str, str]] = None

    # What and where
    title: str = ""
    description: str = ""
    locations: Optional[dict[str, Any]] = None
    links: Optional[dict[str, Any]] = None
    translations: Optional[dict[str, Any]] = None

    # When
    is_all_day: bool = False
    start: datetime
    duration: timedelta = timedelta(0)
    time_zone: Optional[str] = None
    recurrence_rule: Optional[RuleSpec] = None
    recurrence_overrides: Optional[dict[str, Optional[dict[str, Any]]]] = None
    inclusions: tuple[datetime, ...] = ()

    # Scheduling
    status: str = EventStatus.CONFIRMED.value
    free_busy_status: str = "busy"
    participants: Optional[dict[str, Any]] = None
    participant_id: Optional[str] = None

    # Alerts
    use_default_alerts: bool = False
    alerts: Optional[dict[str, Any]] = None

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    @field_validator("start", mode="before")
    @classmethod
    def _naive_start(cls, value: Any) -> Any:
        return _as_naive_datetime(value)

    @field_validator("duration", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> Any:
        if value is None:
            return timedelta(0)
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @field_validator("recurrence_rule", mode="before")
    @classmethod
    def _parse_rule(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return RuleSpec.from_json(value)
        return value

    @field_validator("recurrence_overrides", mode="before")
    @classmethod
    def _canonical_overrides(cls, value: Any) -> Any:
        if not value:
            return None
        overrides = {}
        for key, patch in value.items():
            # Validates the key; raises InvalidDateKeyError (a ValueError)
            from_date_key(key)
            if patch is None or patch.get("excluded") is True:
                overrides[key] = None
            else:
                overrides[key] = dict(patch)
        return overrides

    @field_validator("inclusions", mode="before")
    @classmethod
    def _canonical_inclusions(cls, value: Any) -> Any:
        if not value:
            return ()
        by_key = {}
        for item in value:
            when = _as_naive_datetime(item)
            by_key[to_date_key(when)] = when
        return tuple(by_key[key] for key in sorted(by_key))

    @field_validator("related_to", "locations", "links", "translations", "participants", "alerts")
    @classmethod
    def _empty_to_none(cls, value: Any) -> Any:
        return value or None

    @field_serializer("start")
    def _serialize_start(self, value: datetime) -> str:
        return to_date_key(value)

    @field_serializer("duration")
    def _serialize_duration(self, value: timedelta) -> str:
        return format_duration(value)

    @field_serializer("recurrence_rule")
    def _serialize_rule(self, value: Optional[RuleSpec]) -> Optional[dict[str, Any]]:
        return value.to_json() if value is not None else None

    @field_serializer("inclusions")
    def _serialize_inclusions(self, value: tuple[datetime, ...]) -> list[str]:
        return [to_date_key(when) for when in value]

    # --- Wire format ---

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "RecurringEvent":
        """Build an event from its camelCase wire representation."""
        return cls.model_validate(data)

    def to_json(self) -> dict[str, Any]:
        """Serialize to the camelCase wire representation."""
        return self.model_dump(by_alias=True, mode="json")

    def evolve(self, **changes: Any) -> "RecurringEvent":
        """Return a validated copy with ``changes`` (field names) applied."""
        data = dict(self)
        data.update(changes)
        return type(self).model_validate(data)

    # --- Derived values ---

    @property
    def is_recurring(self) -> bool:
        """True when the event has more than its literal start."""
        return (
            self.recurrence_rule is not None
            or bool(self.recurrence_overrides)
            or bool(self.inclusions)
        )

    @property
    def end(self) -> datetime:
        """Wall-clock end in the event's own timezone."""
        return self.get_end_in_time_zone(None)

    @property
    def utc_start(self) -> datetime:
        return DEFAULT_CONVERTER.to_utc(self.start, self.time_zone)

    @property
    def utc_end(self) -> datetime:
        return self.utc_start + self.duration

    def get_start_in_time_zone(
        self, time_zone: Optional[str], converter: Optional[TimeZoneConverter] = None
    ) -> datetime:
        return start_in_time_zone(self.start, self.time_zone, time_zone, converter)

    def get_end_in_time_zone(
        self, time_zone: Optional[str], converter: Optional[TimeZoneConverter] = None
    ) -> datetime:
        return end_in_time_zone(self.start, self.duration, self.time_zone, time_zone, converter)

    @property
    def location(self) -> str:
        """Name of the first location, or an empty string."""
        if not self.locations:
            return ""
        first = next(iter(self.locations.values()))
        return (first or {}).get("name") or ""

    @property
    def removed_dates(self) -> Optional[list[datetime]]:
        """Sorted start times of removed occurrences, or None when there are none."""
        removed = [
            from_date_key(key)
            for key, patch in (self.recurrence_overrides or {}).items()
            if patch is None
        ]
        return sorted(removed) or None

    @property
    def rsvp(self) -> str:
        """The calendar owner's participation status, or an empty string."""
        you = participant_entry(self.participants, self.participant_id)
        return (you or {}).get("scheduleStatus") or ""

    def with_location(self, name: Optional[str]) -> "RecurringEvent":
        """Replace all locations with a single named one (or none)."""
        return self.evolve(locations={"1": {"name": name}} if name else None)

    def with_rsvp(self, rsvp: str) -> "RecurringEvent":
        """Return a copy with the owner's participation status changed.

        Declining switches alerts off; un-declining an event with no alerts
        switches default alerts back on. Events without an owner entry are
        returned unchanged.
        """
        changes = rsvp_changes(self.participants, self.participant_id, rsvp, self.alerts)
        return self.evolve(**changes) if changes else self


def participant_entry(
    participants: Optional[dict[str, Any]], participant_id: Optional[str]
) -> Optional[dict[str, Any]]:
    if not participants or not participant_id:
        return None
    return participants.get(participant_id)


def rsvp_changes(
    participants: Optional[dict[str, Any]],
    participant_id: Optional[str],
    rsvp: str,
    alerts: Optional[dict[str, Any]],
) -> dict[str, Any]:
    """Field changes that record ``rsvp`` for the owner's participant entry."""
    you = participant_entry(participants, participant_id)
    if you is None:
        return {}
    changes: dict[str, Any] = {}
    if rsvp == ParticipationStatus.DECLINED.value:
        changes["use_default_alerts"] = False
        changes["alerts"] = None
    elif you.get("scheduleStatus") == ParticipationStatus.DECLINED.value and alerts is None:
        changes["use_default_alerts"] = True
    updated = {key: dict(value) for key, value in participants.items()}
    updated[participant_id]["scheduleStatus"] = rsvp
    changes["participants"] = updated
    return changes
