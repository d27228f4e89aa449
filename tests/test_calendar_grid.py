"""Unit tests for month grid generation."""
import calendar as std_calendar
from datetime import date, datetime

import pytest

from processor.calendar_grid import build_month, flatten_days, group_events_by_date
from processor.models import CandidateEvent


def make_event(start: datetime, title: str = 'Event') -> CandidateEvent:
    return CandidateEvent(
        title=title,
        start_time=start,
        url=f"https://example.org/e/{title}-{start:%Y%m%d%H%M}"
    )


ALL_MONTHS = [(year, month) for year in (2023, 2024, 2025) for month in range(1, 13)]


class TestBuildMonth:
    """Test cases for build_month."""

    @pytest.mark.parametrize('year,month', ALL_MONTHS)
    def test_weeks_are_complete(self, year, month):
        grid = build_month(year, month, [])

        assert len(grid.weeks) >= 4
        for week in grid.weeks:
            assert len(week.days) == 7
            assert week.days[0].date.isoweekday() == 1

    @pytest.mark.parametrize('year,month', ALL_MONTHS)
    def test_in_month_days_are_consecutive(self, year, month):
        grid = build_month(year, month, [])
        in_month = [day for day in flatten_days(grid) if day.in_month]

        assert len(in_month) == std_calendar.monthrange(year, month)[1]
        assert [day.day for day in in_month] == list(range(1, len(in_month) + 1))

    @pytest.mark.parametrize('year,month', ALL_MONTHS)
    def test_filler_days_have_no_events(self, year, month):
        events = [make_event(datetime(year, month, 1, 10))]
        grid = build_month(year, month, events)

        for day in flatten_days(grid):
            if not day.in_month:
                assert day.events == []
                assert day.is_today is False

    def test_february_leap_year(self):
        grid = build_month(2024, 2, [])
        days = flatten_days(grid)

        assert len([day for day in days if day.in_month]) == 29
        # Feb 1 2024 is a Thursday
        leading = days[:3]
        assert all(not day.in_month for day in leading)
        assert [day.date for day in leading] == [
            date(2024, 1, 29), date(2024, 1, 30), date(2024, 1, 31)
        ]
        assert days[3].date == date(2024, 2, 1)
        assert days[3].in_month

    def test_month_starting_on_monday_has_no_leading_filler(self):
        # April 1 2024 is a Monday
        grid = build_month(2024, 4, [])

        assert grid.weeks[0].days[0].date == date(2024, 4, 1)
        assert grid.weeks[0].days[0].in_month

    def test_december_rolls_over_into_next_year(self):
        grid = build_month(2024, 12, [])
        last_week = grid.weeks[-1]

        assert last_week.days[-1].date == date(2025, 1, 5)
        assert not last_week.days[-1].in_month

    def test_january_fills_from_previous_year(self):
        grid = build_month(2025, 1, [])
        first_day = grid.weeks[0].days[0]

        assert first_day.date == date(2024, 12, 30)
        assert not first_day.in_month

    def test_month_name_lookup(self):
        assert build_month(2024, 3, []).month_name == 'März'
        assert build_month(2024, 12, []).month_name == 'Dezember'

    def test_events_attached_to_matching_day(self):
        morning = make_event(datetime(2024, 2, 14, 9, 0), 'morning')
        evening = make_event(datetime(2024, 2, 14, 19, 30), 'evening')
        other = make_event(datetime(2024, 2, 20, 18, 0), 'other')

        grid = build_month(2024, 2, [morning, evening, other])
        by_date = {day.date: day for day in flatten_days(grid)}

        assert by_date[date(2024, 2, 14)].events == [morning, evening]
        assert by_date[date(2024, 2, 20)].events == [other]
        assert by_date[date(2024, 2, 15)].events == []

    def test_each_event_appears_exactly_once(self):
        events = [make_event(datetime(2024, 5, day, 12), str(day)) for day in range(1, 32)]
        grid = build_month(2024, 5, events)

        placed = [event for day in flatten_days(grid) for event in day.events]
        assert sorted(placed, key=lambda e: e.url) == sorted(events, key=lambda e: e.url)

    def test_out_of_range_events_are_not_displayed(self):
        # April 30 is shown as leading filler of May 2024 but must stay empty
        before = make_event(datetime(2024, 4, 30, 12), 'before')
        far_away = make_event(datetime(2030, 1, 1, 12), 'far')

        grid = build_month(2024, 5, [before, far_away])

        assert all(day.events == [] for day in flatten_days(grid))

    def test_today_flag(self):
        grid = build_month(2024, 2, [], today=date(2024, 2, 10))
        today_days = [day for day in flatten_days(grid) if day.is_today]

        assert len(today_days) == 1
        assert today_days[0].date == date(2024, 2, 10)

    def test_today_outside_month(self):
        grid = build_month(2024, 2, [], today=date(2024, 3, 1))

        assert not any(day.is_today for day in flatten_days(grid))


def test_group_events_by_date():
    first = make_event(datetime(2024, 1, 1, 8), 'first')
    second = make_event(datetime(2024, 1, 1, 20), 'second')

    grouped = group_events_by_date([first, second])

    assert grouped == {'2024-01-01': [first, second]}
