"""Data models for event ingestion and display."""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class SourceKind(str, Enum):
    """Extraction strategy for a source."""
    HTML = 'html'
    API = 'api'


@dataclass
class Source:
    """Configured origin to scrape."""
    source_id: str
    name: str
    origin: str
    kind: SourceKind = SourceKind.HTML
    credential: Optional[str] = field(default=None, repr=False)
    organization_name: Optional[str] = None
    last_synced: Optional[datetime] = None


@dataclass
class CandidateEvent:
    """Normalized event from an extractor, not yet persisted."""
    title: str
    start_time: datetime
    url: str
    description: str = ''
    end_time: Optional[datetime] = None
    location: str = ''
    organization: Optional[str] = None


@dataclass
class Event:
    """Stored event, unique by url."""
    event_id: str
    source_id: str
    title: str
    start_time: datetime
    url: str
    description: str = ''
    end_time: Optional[datetime] = None
    location: str = ''
    extractor: str = SourceKind.HTML.value
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class SyncResult:
    """Result of one source sync pass."""
    source_id: str
    written: int = 0
    skipped: int = 0
    pages_fetched: int = 0
    errors: List[str] = field(default_factory=list)
    failure: Optional[Exception] = None


@dataclass
class CalendarDay:
    date: date
    day: int
    is_today: bool
    in_month: bool
    events: list = field(default_factory=list)


@dataclass
class CalendarWeek:
    days: List[CalendarDay] = field(default_factory=list)


@dataclass
class CalendarMonth:
    """Month grid of complete Monday-first weeks."""
    year: int
    month: int
    month_name: str
    weeks: List[CalendarWeek] = field(default_factory=list)
