"""Unit tests for recurrence_lite.lite_cycle_iterator."""

from datetime import date, datetime, timedelta

import pytest

from recurrence_lite.lite_cycle_iterator import (
    MAX_ATTEMPTS,
    advance_anchor,
    filter_candidates,
    iterate_cycle,
    month_day_positions,
    monthly_weekday_positions,
    select_positions,
    week_number,
    weeks_in_year,
    year_day_positions,
    yearly_weekday_positions,
)
from recurrence_lite.lite_rule_spec import Frequency, RuleSpec

pytestmark = pytest.mark.unit


class TestCalendarHelpers:
    @pytest.mark.parametrize(
        "value",
        [
            date(2024, 1, 1),
            date(2021, 1, 1),
            date(2024, 12, 30),
            date(2020, 12, 31),
            date(2023, 6, 15),
            date(2027, 1, 3),
        ],
    )
    def test_week_number_matches_iso_with_monday_start(self, value: date) -> None:
        assert week_number(value) == value.isocalendar()[1]

    def test_week_number_with_sunday_start(self) -> None:
        # Week 1 of 2024 starting Sundays runs 31 Dec 2023 - 6 Jan 2024
        assert week_number(date(2023, 12, 31), 6) == 1
        assert week_number(date(2024, 1, 7), 6) == 2

    def test_weeks_in_year(self) -> None:
        assert weeks_in_year(2020) == 53
        assert weeks_in_year(2024) == 52


class TestPositions:
    def test_month_day_positions_count_from_both_ends(self) -> None:
        assert month_day_positions(datetime(2024, 2, 29)) == (29, -1, None)
        assert month_day_positions(datetime(2024, 1, 1)) == (1, -31, None)

    def test_monthly_weekday_positions_for_last_friday(self) -> None:
        # 26 January 2024 is the 4th and last Friday of the month
        assert monthly_weekday_positions(datetime(2024, 1, 26)) == (4, 32, -3)

    def test_yearly_weekday_positions_for_first_monday(self) -> None:
        day, forward, backward = yearly_weekday_positions(datetime(2024, 1, 1))

        assert (day, forward) == (0, 7)
        assert backward == 0 + 7 * -53

    def test_year_day_positions(self) -> None:
        assert year_day_positions(datetime(2024, 12, 31)) == (366, -1, None)

    def test_filter_candidates_matches_any_position(self) -> None:
        days = [datetime(2024, 1, day) for day in range(1, 32)]

        kept = filter_candidates(days, month_day_positions, [1, -1])

        assert kept == [datetime(2024, 1, 1), datetime(2024, 1, 31)]

    def test_select_positions_counts_from_both_ends(self) -> None:
        items = [datetime(2024, 1, day) for day in (1, 2, 3, 4)]

        assert select_positions(items, [1, -1]) == [items[0], items[3]]
        assert select_positions(items, [5]) == []


class TestAdvanceAnchor:
    def test_month_overflow_carries_into_next_month(self) -> None:
        assert advance_anchor(datetime(2024, 1, 31, 9), Frequency.MONTHLY, 1) == datetime(
            2024, 3, 2, 9
        )

    def test_yearly_from_leap_day(self) -> None:
        assert advance_anchor(datetime(2024, 2, 29), Frequency.YEARLY, 1) == datetime(2025, 3, 1)

    @pytest.mark.parametrize(
        "frequency,interval,expected",
        [
            (Frequency.WEEKLY, 2, datetime(2024, 1, 15, 9)),
            (Frequency.DAILY, 3, datetime(2024, 1, 4, 9)),
            (Frequency.HOURLY, 20, datetime(2024, 1, 2, 5)),
            (Frequency.MINUTELY, 90, datetime(2024, 1, 1, 10, 30)),
            (Frequency.SECONDLY, 61, datetime(2024, 1, 1, 9, 1, 1)),
        ],
    )
    def test_simple_units(self, frequency: Frequency, interval: int, expected: datetime) -> None:
        assert advance_anchor(datetime(2024, 1, 1, 9), frequency, interval) == expected


class TestIterateCycle:
    def test_fast_path_returns_the_anchor(self) -> None:
        rule = RuleSpec.from_json({"frequency": "daily", "interval": 2})
        anchor = datetime(2024, 1, 1, 9)

        candidates, next_anchor = iterate_cycle(rule, anchor, anchor)

        assert candidates == [anchor]
        assert next_anchor == datetime(2024, 1, 3, 9)

    def test_weekly_period_is_aligned_to_first_day_of_week(self) -> None:
        rule = RuleSpec.from_json(
            {"frequency": "weekly", "firstDayOfWeek": "su", "byDay": [{"day": "su"}, {"day": "sa"}]}
        )
        anchor = datetime(2024, 1, 3, 9)

        candidates, next_anchor = iterate_cycle(rule, anchor, anchor)

        assert candidates == [datetime(2023, 12, 31, 9), datetime(2024, 1, 6, 9)]
        assert next_anchor == datetime(2024, 1, 10, 9)

    def test_set_position_applies_across_the_whole_cycle(self) -> None:
        rule = RuleSpec.from_json(
            {
                "frequency": "monthly",
                "byDay": [{"day": day} for day in ("mo", "tu", "we", "th", "fr")],
                "bySetPosition": [-1],
            }
        )
        anchor = datetime(2024, 1, 1, 9)

        candidates, _ = iterate_cycle(rule, anchor, anchor)

        assert candidates == [datetime(2024, 1, 31, 9)]

    def test_expansions_form_a_sorted_cross_product(self) -> None:
        rule = RuleSpec.from_json({"frequency": "daily", "byHour": [17, 9], "byMinute": [30, 0]})
        anchor = datetime(2024, 1, 1, 9)

        candidates, _ = iterate_cycle(rule, anchor, anchor)

        assert candidates == [
            datetime(2024, 1, 1, 9, 0),
            datetime(2024, 1, 1, 9, 30),
            datetime(2024, 1, 1, 17, 0),
            datetime(2024, 1, 1, 17, 30),
        ]

    def test_sub_daily_frequency_filters_instead_of_expanding(self) -> None:
        rule = RuleSpec.from_json({"frequency": "hourly", "byHour": [12]})
        anchor = datetime(2024, 1, 1, 9)

        candidates, next_anchor = iterate_cycle(rule, anchor, anchor)

        assert candidates == [datetime(2024, 1, 1, 12)]
        assert next_anchor == datetime(2024, 1, 1, 13)

    def test_empty_cycles_are_skipped(self) -> None:
        rule = RuleSpec.from_json({"frequency": "monthly", "byMonthDay": [31]})
        anchor = datetime(2024, 2, 1, 9)

        candidates, next_anchor = iterate_cycle(rule, anchor, anchor)

        assert candidates == [datetime(2024, 3, 31, 9)]
        assert next_anchor == datetime(2024, 4, 1, 9)

    def test_complex_anchor_synthesizes_the_start_day(self) -> None:
        rule = RuleSpec.from_json({"frequency": "monthly"})
        start = datetime(2024, 1, 30, 9)

        candidates, _ = iterate_cycle(rule, datetime(2024, 2, 1, 9), start, complex_anchor=True)

        assert candidates == [datetime(2024, 3, 30, 9)]

    def test_yearly_by_month_fills_in_the_anchor_day(self) -> None:
        rule = RuleSpec.from_json({"frequency": "yearly", "byMonth": ["3", "6"]})
        anchor = datetime(2024, 1, 15, 9)

        candidates, _ = iterate_cycle(rule, anchor, anchor)

        assert candidates == [datetime(2024, 3, 15, 9), datetime(2024, 6, 15, 9)]

    def test_impossible_rule_exhausts_the_attempt_ceiling(self) -> None:
        rule = RuleSpec.from_json({"frequency": "monthly", "byMonth": ["2"], "byMonthDay": [30]})
        anchor = datetime(2024, 1, 1)

        candidates, next_anchor = iterate_cycle(rule, anchor, anchor)

        assert candidates is None
        assert next_anchor == datetime(2026, 1, 1)
        assert MAX_ATTEMPTS[Frequency.MONTHLY] == 24

    def test_inert_day_never_matches(self) -> None:
        rule = RuleSpec.from_json({"frequency": "weekly", "byDay": [{"day": "xx"}]})
        anchor = datetime(2024, 1, 1)

        candidates, next_anchor = iterate_cycle(rule, anchor, anchor)

        assert candidates is None
        assert next_anchor == anchor + timedelta(weeks=53)
