"""iCal export of stored events."""
from datetime import datetime, timedelta, timezone
from typing import Iterable

from icalendar import Calendar as ICalCalendar, Event as ICalEvent
from zoneinfo import ZoneInfo

from processor.models import Event, Source

PRODID = '-//Events Calendar Sync//calendar-sync//'
UID_DOMAIN = 'linke-calendar'
DEFAULT_DURATION = timedelta(hours=1)


def export_ical(source: Source, events: Iterable[Event], tz_name: str = 'Europe/Berlin') -> bytes:
    """
    Serialize a source's events as an iCalendar document.

    Stored times are wall-clock times in ``tz_name``. Events without an
    end time last one hour.
    """
    tz = ZoneInfo(tz_name)

    vcal = ICalCalendar()
    vcal.add('prodid', PRODID)
    vcal.add('version', '2.0')
    vcal.add('method', 'PUBLISH')
    vcal.add('x-wr-calname', source.name)
    vcal.add('x-wr-caldesc', f"Events calendar for {source.name}")
    vcal.add('x-wr-timezone', tz_name)
    vcal.add('x-published-ttl', 'PT1H')

    for event in events:
        start = event.start_time.replace(tzinfo=tz)
        end = event.end_time.replace(tzinfo=tz) if event.end_time else start + DEFAULT_DURATION

        ical_event = ICalEvent()
        ical_event.add('uid', f"{source.source_id}-{event.event_id}@{UID_DOMAIN}")
        ical_event.add('summary', event.title)
        ical_event.add('dtstart', start)
        ical_event.add('dtend', end)
        ical_event.add('dtstamp', event.updated_at or event.created_at or datetime.now(timezone.utc))
        if event.created_at:
            ical_event.add('created', event.created_at)
        if event.updated_at:
            ical_event.add('last-modified', event.updated_at)
        if event.description:
            ical_event.add('description', event.description)
        if event.location:
            ical_event.add('location', event.location)
        if event.url:
            ical_event.add('url', event.url)
        vcal.add_component(ical_event)

    return vcal.to_ical()
