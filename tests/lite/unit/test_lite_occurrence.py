"""Unit tests for recurrence_lite.lite_occurrence."""

from datetime import datetime, timedelta

import pytest

from recurrence_lite.lite_event_series import EventSeries
from recurrence_lite.lite_occurrence import Occurrence, OccurrenceCache

pytestmark = pytest.mark.unit

SECOND_MONDAY = "2024-01-08T09:00:00"
THIRD_MONDAY = "2024-01-15T09:00:00"


@pytest.fixture
def participants():
    return {
        "me": {"name": "Me", "scheduleStatus": "accepted"},
        "boss": {"name": "Boss", "scheduleStatus": "accepted", "roles": {"owner": True}},
    }


@pytest.fixture
def series(make_event, participants):
    return EventSeries(
        make_event(
            {"frequency": "weekly"},
            locations={"1": {"name": "Room A"}},
            participants=participants,
            participant_id="me",
            time_zone="Europe/London",
        )
    )


class TestIdentity:
    def test_same_key_gives_same_object(self, series) -> None:
        assert series.occurrence(SECOND_MONDAY) is series.occurrence(SECOND_MONDAY)

    def test_identity_survives_overlay_edits(self, series) -> None:
        before = series.occurrence(SECOND_MONDAY)

        before.title = "Planning"

        assert series.occurrence(SECOND_MONDAY) is before
        assert before.title == "Planning"

    def test_identity_is_reset_when_start_moves(self, series, monday) -> None:
        before = series.occurrence(SECOND_MONDAY)

        series.replace(start=monday + timedelta(days=7))

        assert series.occurrence(SECOND_MONDAY) is not before

    def test_properties_come_from_the_series(self, series) -> None:
        occurrence = series.occurrence(SECOND_MONDAY)

        assert occurrence.event_id == series.id
        assert occurrence.uid == series.event.uid
        assert occurrence.date_key == SECOND_MONDAY
        assert occurrence.original_start == datetime(2024, 1, 8, 9)
        assert occurrence.start == datetime(2024, 1, 8, 9)
        assert occurrence.duration == timedelta(minutes=30)
        assert occurrence.location == "Room A"
        assert repr(occurrence) == f"Occurrence({series.id!r}, {SECOND_MONDAY!r})"


class TestOverrides:
    def test_setting_a_field_only_affects_one_occurrence(self, series) -> None:
        series.occurrence(SECOND_MONDAY).set("title", "Planning")

        assert series.occurrence(SECOND_MONDAY).get("title") == "Planning"
        assert series.occurrence(THIRD_MONDAY).title == "Standup"
        assert series.occurrence(SECOND_MONDAY).overrides == {"title": "Planning"}

    def test_moved_occurrence(self, series) -> None:
        occurrence = series.occurrence(SECOND_MONDAY)

        occurrence.start = datetime(2024, 1, 9, 14)

        assert occurrence.start == datetime(2024, 1, 9, 14)
        assert occurrence.end == datetime(2024, 1, 9, 14, 30)
        assert occurrence.original_start == datetime(2024, 1, 8, 9)

    def test_remove(self, series) -> None:
        occurrence = series.occurrence(SECOND_MONDAY)

        occurrence.remove()

        assert occurrence.is_removed
        assert occurrence.overrides == {}

    def test_utc_times_follow_the_timezone(self, series) -> None:
        occurrence = series.occurrence(SECOND_MONDAY)

        occurrence.time_zone = "America/New_York"

        assert occurrence.utc_start == datetime(2024, 1, 8, 14)
        assert occurrence.utc_end == datetime(2024, 1, 8, 14, 30)
        assert occurrence.get_start_in_time_zone("Europe/London") == datetime(2024, 1, 8, 14)


class TestIndex:
    def test_first_occurrence(self, series, monday) -> None:
        assert series.occurrence("2024-01-01T09:00:00").index == 0

    def test_unbounded_series(self, series) -> None:
        assert series.occurrence(THIRD_MONDAY).index == 2

    def test_bounded_series_with_a_removal(self, make_event) -> None:
        series = EventSeries(
            make_event({"frequency": "weekly", "count": 5}, recurrence_overrides={SECOND_MONDAY: None})
        )

        assert series.occurrence(THIRD_MONDAY).index == 1
        assert series.occurrence("2024-01-29T09:00:00").index == 3


class TestRsvp:
    def test_reply_applies_to_the_series(self, series) -> None:
        series.occurrence(SECOND_MONDAY).set_rsvp("declined")

        assert series.event.rsvp == "declined"
        assert series.occurrence(THIRD_MONDAY).rsvp == "declined"
        assert series.event.recurrence_overrides is None

    def test_reply_to_an_organizer_exception_is_kept_on_the_occurrence(self, series) -> None:
        occurrence = series.occurrence(SECOND_MONDAY)
        occurrence.title = "Planning"

        occurrence.set_rsvp("declined")

        assert occurrence.rsvp == "declined"
        assert occurrence.overrides == {
            "title": "Planning",
            "participants/me/scheduleStatus": "declined",
        }
        assert series.event.rsvp == "accepted"
        assert series.occurrence(THIRD_MONDAY).rsvp == "accepted"

    def test_personal_overrides_do_not_make_an_exception(self, series) -> None:
        occurrence = series.occurrence(SECOND_MONDAY)
        occurrence.alerts = {"1": {"trigger": "-PT15M"}}

        occurrence.set_rsvp("tentative")

        assert series.event.rsvp == "tentative"


class TestOccurrenceCache:
    def test_invalidate_event(self, series) -> None:
        cache = series.cache
        series.occurrence(SECOND_MONDAY)
        series.occurrence(THIRD_MONDAY)

        assert len(cache) == 2
        assert (series.id, SECOND_MONDAY) in cache
        assert cache.invalidate_event(series.id) == 2
        assert len(cache) == 0

    def test_entry_is_replaced_for_a_different_series(self, make_event) -> None:
        cache = OccurrenceCache()
        event = make_event({"frequency": "daily"})
        first = EventSeries(event, cache)
        second = EventSeries(event, cache)

        occurrence = cache.get(first, SECOND_MONDAY)

        assert isinstance(occurrence, Occurrence)
        assert cache.get(second, SECOND_MONDAY) is not occurrence
        assert cache.get(second, SECOND_MONDAY).series is second

    def test_clear(self, series) -> None:
        series.occurrence(SECOND_MONDAY)

        series.cache.clear()

        assert len(series.cache) == 0
