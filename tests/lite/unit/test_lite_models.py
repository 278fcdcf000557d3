"""Unit tests for recurrence_lite.lite_models."""

from datetime import date, datetime, timedelta

import pytest
from pydantic import ValidationError

from recurrence_lite.lite_models import (
    Calendar,
    ParticipationStatus,
    RecurringEvent,
    participant_entry,
    rsvp_changes,
)
from recurrence_lite.lite_rule_spec import Frequency

pytestmark = pytest.mark.unit


@pytest.fixture
def wire_event() -> dict:
    return {
        "id": "evt-1",
        "uid": "uid-1",
        "calendarId": "work",
        "title": "Standup",
        "start": "2024-01-01T09:00:00",
        "duration": "PT30M",
        "timeZone": "Europe/London",
        "recurrenceRule": {"frequency": "weekly", "count": 3},
        "recurrenceOverrides": {
            "2024-01-08T09:00:00": {"title": "Retro"},
            "2024-01-15T09:00:00": {"excluded": True},
        },
        "inclusions": ["2024-01-03T09:00:00"],
        "locations": {"1": {"name": "Room A"}},
    }


class TestWireFormat:
    def test_from_json(self, wire_event: dict) -> None:
        event = RecurringEvent.from_json(wire_event)

        assert event.calendar_id == "work"
        assert event.start == datetime(2024, 1, 1, 9)
        assert event.duration == timedelta(minutes=30)
        assert event.recurrence_rule.frequency is Frequency.WEEKLY
        assert event.recurrence_overrides["2024-01-15T09:00:00"] is None
        assert event.inclusions == (datetime(2024, 1, 3, 9),)

    def test_to_json(self, wire_event: dict) -> None:
        data = RecurringEvent.from_json(wire_event).to_json()

        assert data["start"] == "2024-01-01T09:00:00"
        assert data["duration"] == "PT30M"
        assert data["timeZone"] == "Europe/London"
        assert data["recurrenceRule"] == {"frequency": "weekly", "count": 3}
        assert data["recurrenceOverrides"] == {
            "2024-01-08T09:00:00": {"title": "Retro"},
            "2024-01-15T09:00:00": None,
        }
        assert data["inclusions"] == ["2024-01-03T09:00:00"]

    def test_round_trip(self, wire_event: dict) -> None:
        event = RecurringEvent.from_json(wire_event)

        again = RecurringEvent.from_json(event.to_json())

        assert again.to_json() == event.to_json()
        assert again.recurrence_rule == event.recurrence_rule

    def test_invalid_override_key_is_rejected(self, wire_event: dict) -> None:
        wire_event["recurrenceOverrides"] = {"January 8th": None}

        with pytest.raises(ValidationError):
            RecurringEvent.from_json(wire_event)

    def test_start_keeps_wall_clock_time(self) -> None:
        event = RecurringEvent.from_json({"start": "2024-01-01T09:00:00+01:00"})

        assert event.start == datetime(2024, 1, 1, 9)

    def test_date_start_is_midnight(self) -> None:
        assert RecurringEvent(start=date(2024, 1, 1)).start == datetime(2024, 1, 1)

    def test_empty_structures_become_none(self) -> None:
        event = RecurringEvent(start=datetime(2024, 1, 1), locations={}, recurrence_overrides={})

        assert event.locations is None
        assert event.recurrence_overrides is None

    def test_inclusions_are_sorted_and_deduplicated(self) -> None:
        event = RecurringEvent(
            start=datetime(2024, 1, 1),
            inclusions=["2024-01-05T09:00:00", datetime(2024, 1, 3, 9), datetime(2024, 1, 5, 9)],
        )

        assert event.inclusions == (datetime(2024, 1, 3, 9), datetime(2024, 1, 5, 9))

    def test_ids_are_generated(self) -> None:
        first = RecurringEvent(start=datetime(2024, 1, 1))
        second = RecurringEvent(start=datetime(2024, 1, 1))

        assert first.id != second.id
        assert first.uid != second.uid


class TestValueSemantics:
    def test_event_is_immutable(self, make_event) -> None:
        with pytest.raises(ValidationError):
            make_event().title = "Retro"

    def test_evolve_validates(self, make_event) -> None:
        event = make_event()

        changed = event.evolve(duration="PT1H", recurrence_rule={"frequency": "daily"})

        assert changed.duration == timedelta(hours=1)
        assert changed.recurrence_rule.frequency is Frequency.DAILY
        assert event.duration == timedelta(minutes=30)


class TestDerivedValues:
    def test_is_recurring(self, make_event, monday) -> None:
        assert not make_event().is_recurring
        assert make_event({"frequency": "daily"}).is_recurring
        assert make_event(inclusions=[monday + timedelta(days=2)]).is_recurring

    def test_end_and_utc(self, make_event, test_timezone: str) -> None:
        event = make_event(time_zone=test_timezone)

        assert event.end == datetime(2024, 1, 1, 9, 30)
        assert event.utc_start == datetime(2024, 1, 1, 14)
        assert event.utc_end == datetime(2024, 1, 1, 14, 30)
        assert event.get_start_in_time_zone("Europe/London") == datetime(2024, 1, 1, 14)

    def test_location(self, make_event) -> None:
        event = make_event()

        assert event.location == ""
        assert event.with_location("Room A").locations == {"1": {"name": "Room A"}}
        assert event.with_location("Room A").location == "Room A"
        assert event.with_location("Room A").with_location(None).locations is None

    def test_removed_dates(self, make_event) -> None:
        event = make_event(
            {"frequency": "daily"},
            recurrence_overrides={
                "2024-01-05T09:00:00": None,
                "2024-01-03T09:00:00": None,
                "2024-01-04T09:00:00": {"title": "Moved"},
            },
        )

        assert event.removed_dates == [datetime(2024, 1, 3, 9), datetime(2024, 1, 5, 9)]
        assert make_event().removed_dates is None

    def test_calendar_from_wire(self) -> None:
        calendar = Calendar.model_validate({"id": "work", "isVisible": False})

        assert not calendar.is_visible
        assert calendar.may_write


class TestRsvp:
    @pytest.fixture
    def invited(self, make_event):
        return make_event(
            participants={"me": {"scheduleStatus": "accepted"}, "boss": {"scheduleStatus": "accepted"}},
            participant_id="me",
            alerts={"1": {"trigger": "-PT15M"}},
            use_default_alerts=True,
        )

    def test_decline_switches_alerts_off(self, invited) -> None:
        declined = invited.with_rsvp(ParticipationStatus.DECLINED.value)

        assert declined.rsvp == "declined"
        assert declined.alerts is None
        assert declined.use_default_alerts is False
        assert declined.participants["boss"]["scheduleStatus"] == "accepted"
        assert invited.rsvp == "accepted"

    def test_accepting_again_restores_default_alerts(self, invited) -> None:
        declined = invited.with_rsvp("declined")

        accepted = declined.with_rsvp("accepted")

        assert accepted.rsvp == "accepted"
        assert accepted.use_default_alerts is True

    def test_event_without_owner_entry_is_unchanged(self, make_event) -> None:
        event = make_event()

        assert event.with_rsvp("declined") is event
        assert event.rsvp == ""

    def test_helpers(self) -> None:
        participants = {"me": {"scheduleStatus": "tentative"}}

        assert participant_entry(participants, "me") == {"scheduleStatus": "tentative"}
        assert participant_entry(participants, None) is None
        assert rsvp_changes(participants, "someone", "accepted", None) == {}
