"""Event extraction from paginated HTML listing pages."""
import logging
from datetime import datetime
from typing import List, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from processor.errors import ParseError
from processor.models import CandidateEvent

logger = logging.getLogger(__name__)

# Tried in order, first match wins
TIMESTAMP_FORMATS = (
    '%Y-%m-%d %H:%M',
    '%Y-%m-%dT%H:%M',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%d',
)


def parse_timestamp(value: str, formats: Sequence[str] = TIMESTAMP_FORMATS) -> datetime:
    """
    Parse a timestamp against an ordered list of formats.

    Args:
        value: Timestamp text (e.g., "2024-03-01 19:00")
        formats: strptime formats to try in order

    Returns:
        Naive datetime

    Raises:
        ParseError: If no format matches
    """
    value = value.strip()
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ParseError(f"unable to parse datetime: {value}")


class HTMLExtractor:
    """Extractor for event-card listing pages."""

    def __init__(
        self,
        card_selector: str = '.termin.post-wrapper',
        title_selector: str = 'h2.card-title a',
        time_selector: str = 'time.termin-zeiten-datum',
        description_selector: str = "p[itemprop='description']",
        read_more_marker: str = 'Weiterlesen',
        locative_prepositions: Sequence[str] = ('im ', 'in ')
    ):
        self.card_selector = card_selector
        self.title_selector = title_selector
        self.time_selector = time_selector
        self.description_selector = description_selector
        self.read_more_marker = read_more_marker
        self.locative_prepositions = tuple(locative_prepositions)

    def extract(self, html_content: str, base_url: str) -> List[CandidateEvent]:
        """
        Parse all event cards on a listing page.

        Malformed cards are logged and skipped.

        Args:
            html_content: HTML of the listing page
            base_url: URL the page was fetched from, for resolving links

        Returns:
            List of CandidateEvent objects in page order

        Raises:
            ParseError: If the document cannot be parsed at all
        """
        try:
            soup = BeautifulSoup(html_content, 'html.parser')
        except Exception as e:
            raise ParseError(f"failed to parse HTML: {e}") from e

        events = []
        for index, card in enumerate(soup.select(self.card_selector)):
            try:
                events.append(self._parse_card(card, base_url))
            except ParseError as e:
                logger.warning(f"Failed to parse event {index}: {e}")
                continue

        return events

    def _parse_card(self, card, base_url: str) -> CandidateEvent:
        link = card.select_one(self.title_selector)
        title = link.get_text().strip() if link else ''
        if not title:
            raise ParseError("missing title")

        href = (link.get('href') or '').strip()
        if not href:
            raise ParseError("missing event URL")

        time_elem = card.select_one(self.time_selector)
        datetime_str = time_elem.get('datetime') if time_elem else None
        if not datetime_str:
            raise ParseError("missing datetime")

        description = self.extract_description(card)

        return CandidateEvent(
            title=title,
            start_time=parse_timestamp(datetime_str),
            url=urljoin(base_url, href),
            description=description,
            location=self.extract_location(description),
        )

    def extract_description(self, card) -> str:
        """Return the description text, cut at the read-more marker."""
        desc_elem = card.select_one(self.description_selector)
        if desc_elem is None:
            return ''

        description = desc_elem.get_text().strip()
        marker = description.find(self.read_more_marker)
        if marker != -1:
            description = description[:marker].strip()
        return description

    def extract_location(self, description: str) -> str:
        """
        Guess the location from the first description line.

        Best effort: the line is used only if it contains a locative
        preposition.
        """
        if not description:
            return ''
        first_line = description.split('\n', 1)[0].strip()
        if any(prep in first_line for prep in self.locative_prepositions):
            return first_line
        return ''
