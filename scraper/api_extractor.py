"""Event extraction from the Zetkin organization API."""
import json
import logging
import re
from datetime import datetime, tzinfo
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from processor.errors import FetchError, ParseError
from processor.models import CandidateEvent, Source
from scraper.fetcher import HttpFetcher

logger = logging.getLogger(__name__)

# strptime's %f takes at most six digits
_EXTRA_FRACTION = re.compile(r'(\.\d{6})\d+')


class APIExtractor:
    """Fetches and normalizes all events of one organization."""

    API_URL = "https://app.zetkin.die-linke.de/api/rpc"
    EVENT_URL_TEMPLATE = "https://app.zetkin.die-linke.de/o/{org_id}/events/{event_id}"
    TIMESTAMP_FORMATS = ('%Y-%m-%dT%H:%M:%S%z', '%Y-%m-%dT%H:%M:%S.%f%z')
    PREVIEW_LENGTH = 500

    def __init__(
        self,
        fetcher: HttpFetcher,
        api_url: Optional[str] = None,
        timezone: str = 'Europe/Berlin'
    ):
        """
        Initialize the API extractor.

        Args:
            fetcher: HTTP fetcher used for the RPC call
            api_url: Endpoint, may contain an ``{org_id}`` placeholder
            timezone: Zone that event times are converted to
        """
        self.fetcher = fetcher
        self.api_url = api_url or self.API_URL
        self.timezone: tzinfo = ZoneInfo(timezone)

    def fetch_all(self, source: Source) -> List[CandidateEvent]:
        """
        Fetch all non-cancelled events for an organization.

        Args:
            source: API source; ``origin`` holds the organization id and
                ``credential`` the session cookie

        Returns:
            List of CandidateEvent objects

        Raises:
            FetchError: On network failure or non-success status
            ParseError: If the response is not the expected JSON envelope
        """
        org_id = source.origin
        url = self.api_url.format(org_id=org_id)
        headers = {'Content-Type': 'application/json'}
        if source.credential:
            headers['Cookie'] = f"zsid={source.credential}"
        payload = {'func': 'getAllEvents', 'params': {'orgId': org_id}}

        response = self.fetcher.post_json(url, headers, payload)

        if not response.ok:
            preview = response.text
            if len(preview) > self.PREVIEW_LENGTH:
                preview = preview[:self.PREVIEW_LENGTH] + '...'
            logger.error(f"Zetkin API error response: {preview}")
            raise FetchError(
                f"HTTP status {response.status_code}",
                status_code=response.status_code
            )

        entries = self._decode_envelope(response.body)

        events = []
        for entry in entries:
            if entry.get('cancelled') is not None:
                continue
            try:
                events.append(self._to_candidate(entry, org_id))
            except ParseError as e:
                logger.warning(f"Skipping Zetkin event {entry.get('id')}: {e}")
                continue

        logger.info(
            f"Fetched {len(events)} events for organization {org_id} "
            f"({len(entries)} entries in response)"
        )
        return events

    def _decode_envelope(self, body: bytes) -> List[Dict[str, Any]]:
        try:
            data = json.loads(body)
        except ValueError as e:
            raise ParseError(f"failed to unmarshal response: {e}") from e

        result = data.get('result') if isinstance(data, dict) else None
        if not isinstance(result, list):
            raise ParseError("response has no result list")
        return [entry for entry in result if isinstance(entry, dict)]

    def _to_candidate(self, entry: Dict[str, Any], org_id: str) -> CandidateEvent:
        activity = _mapping(entry, 'activity')
        title = _optional_text(entry, 'title') or _optional_text(activity, 'title')
        if not title:
            raise ParseError("missing title")

        start_str = _optional_text(entry, 'start_time')
        if not start_str:
            raise ParseError("missing start_time")
        start_time = self.parse_time(start_str)

        end_time = None
        end_str = _optional_text(entry, 'end_time')
        if end_str:
            end_time = self.parse_time(end_str)

        url = _optional_text(entry, 'url') or self.EVENT_URL_TEMPLATE.format(
            org_id=org_id,
            event_id=entry.get('id')
        )

        location = _optional_text(_mapping(entry, 'location'), 'title') or ''
        organization = _optional_text(_mapping(entry, 'organization'), 'title')

        return CandidateEvent(
            title=title,
            start_time=start_time,
            end_time=end_time,
            url=url,
            description=self.build_description(entry),
            location=location,
            organization=organization,
        )

    def parse_time(self, value: str) -> datetime:
        """
        Parse an RFC 3339 API timestamp into local wall-clock time.

        Fractional seconds are accepted and truncated to microseconds.

        Raises:
            ParseError: If the value is not an RFC 3339 timestamp
        """
        if not isinstance(value, str):
            raise ParseError(f"unexpected timestamp type: {value!r}")
        normalized = _EXTRA_FRACTION.sub(r'\1', value)
        for fmt in self.TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(normalized, fmt)
            except ValueError:
                continue
            return parsed.astimezone(self.timezone).replace(tzinfo=None)
        raise ParseError(f"unexpected timestamp format: {value}")

    @staticmethod
    def build_description(entry: Dict[str, Any]) -> str:
        """
        Build the description text for an entry.

        Raises:
            ParseError: If a nested field has the wrong type
        """
        activity = _mapping(entry, 'activity')
        description = (
            _optional_text(entry, 'info_text') or _optional_text(activity, 'title') or ''
        )

        contact_name = _optional_text(_mapping(entry, 'contact'), 'name')
        if contact_name:
            contact_line = f"Kontakt: {contact_name}"
            description = f"{description}\n\n{contact_line}" if description else contact_line

        return description


def _mapping(entry: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = entry.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ParseError(f"field {key!r} is not an object: {value!r}")
    return value


def _optional_text(entry: Dict[str, Any], key: str) -> Optional[str]:
    value = entry.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ParseError(f"field {key!r} is not a string: {value!r}")
    return value
