"""Month grid generation for the calendar view."""
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from processor.models import CalendarDay, CalendarMonth, CalendarWeek

MONTH_NAMES = {
    1: 'Januar',
    2: 'Februar',
    3: 'März',
    4: 'April',
    5: 'Mai',
    6: 'Juni',
    7: 'Juli',
    8: 'August',
    9: 'September',
    10: 'Oktober',
    11: 'November',
    12: 'Dezember',
}

DAYS_PER_WEEK = 7


def group_events_by_date(events: Iterable) -> Dict[str, list]:
    """
    Index events by the ISO date of their start time.

    Args:
        events: Objects with a ``start_time`` datetime

    Returns:
        Dictionary mapping 'YYYY-MM-DD' to the events starting that day
    """
    grouped = defaultdict(list)
    for event in events:
        grouped[event.start_time.date().isoformat()].append(event)
    return grouped


def build_month(
    year: int,
    month: int,
    events: Iterable,
    today: Optional[date] = None
) -> CalendarMonth:
    """
    Build the week/day grid for one month.

    Weeks start on Monday. The first and last week are padded with days
    from the adjacent months; those filler days never carry events.

    Args:
        year: Calendar year
        month: Month number (1-12)
        events: Events to place; ones outside the month are ignored
        today: Date to flag as today (default: current UTC date)

    Returns:
        CalendarMonth snapshot
    """
    first_day = date(year, month, 1)
    last_day = (first_day + timedelta(days=32)).replace(day=1) - timedelta(days=1)

    if today is None:
        today = datetime.now(timezone.utc).date()
    today_str = today.isoformat()

    events_by_date = group_events_by_date(events)

    calendar = CalendarMonth(
        year=year,
        month=month,
        month_name=MONTH_NAMES.get(month, ''),
    )
    current_week = CalendarWeek()

    # Leading filler from the previous month
    leading = first_day.isoweekday() - 1
    for offset in range(leading, 0, -1):
        filler = first_day - timedelta(days=offset)
        current_week.days.append(_filler_day(filler))

    for day_number in range(1, last_day.day + 1):
        current = date(year, month, day_number)
        date_str = current.isoformat()
        current_week.days.append(CalendarDay(
            date=current,
            day=day_number,
            is_today=date_str == today_str,
            in_month=True,
            events=list(events_by_date.get(date_str, [])),
        ))

        if len(current_week.days) == DAYS_PER_WEEK:
            calendar.weeks.append(current_week)
            current_week = CalendarWeek()

    if current_week.days:
        offset = 1
        while len(current_week.days) < DAYS_PER_WEEK:
            current_week.days.append(_filler_day(last_day + timedelta(days=offset)))
            offset += 1
        calendar.weeks.append(current_week)

    return calendar


def _filler_day(filler: date) -> CalendarDay:
    return CalendarDay(
        date=filler,
        day=filler.day,
        is_today=False,
        in_month=False,
        events=[],
    )


def flatten_days(calendar: CalendarMonth) -> List[CalendarDay]:
    """Return every day of the grid in display order."""
    return [day for week in calendar.weeks for day in week.days]
