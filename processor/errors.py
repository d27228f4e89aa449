"""Error taxonomy for event ingestion."""
from typing import Optional


class CalendarSyncError(Exception):
    """Base class for ingestion errors."""


class FetchError(CalendarSyncError):
    """Network failure, timeout or non-success HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(CalendarSyncError):
    """Malformed or unrecognized markup, timestamp or JSON shape."""


class StorageError(CalendarSyncError):
    """Failed read or write against the event store."""


class ConfigError(CalendarSyncError):
    """Invalid configuration, raised at startup only."""
