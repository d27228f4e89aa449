"""Event processor for validating and normalizing candidate events."""
import hashlib
import logging
from typing import List, Optional

from processor.models import CandidateEvent, Event, Source

logger = logging.getLogger(__name__)


class EventProcessor:
    """Turns extractor candidates into storable events."""

    MAX_TITLE_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 2000
    MAX_LOCATION_LENGTH = 500

    def process_events(
        self,
        candidates: List[CandidateEvent],
        source: Source
    ) -> List[Event]:
        """
        Validate and normalize candidate events for one source.

        Args:
            candidates: Candidates returned by an extractor
            source: Source the candidates were fetched from

        Returns:
            List of valid Event objects, in input order
        """
        processed_events = []

        for candidate in candidates:
            processed_event = self._process_single_event(candidate, source)
            if processed_event:
                processed_events.append(processed_event)

        if len(processed_events) != len(candidates):
            logger.info(
                f"Processed {len(processed_events)} valid events out of "
                f"{len(candidates)} candidates for source {source.source_id}"
            )
        return processed_events

    def _process_single_event(
        self,
        candidate: CandidateEvent,
        source: Source
    ) -> Optional[Event]:
        if not self._validate_required_fields(candidate):
            return None

        url = candidate.url.strip()
        end_time = candidate.end_time
        if end_time is not None and end_time < candidate.start_time:
            logger.warning(
                f"Dropping end time before start for event '{candidate.title}'"
            )
            end_time = None

        return Event(
            event_id=self.generate_event_id(url),
            source_id=source.source_id,
            title=candidate.title.strip()[:self.MAX_TITLE_LENGTH],
            description=(candidate.description or '')[:self.MAX_DESCRIPTION_LENGTH],
            start_time=candidate.start_time,
            end_time=end_time,
            url=url,
            location=(candidate.location or '')[:self.MAX_LOCATION_LENGTH],
            extractor=source.kind.value,
        )

    def _validate_required_fields(self, candidate: CandidateEvent) -> bool:
        """
        Validate that required fields are present and non-empty.

        Args:
            candidate: CandidateEvent to validate

        Returns:
            True if valid, False otherwise
        """
        if not candidate.title or not candidate.title.strip():
            logger.warning("Event missing required field: title")
            return False

        if not candidate.url or not candidate.url.strip():
            logger.warning(f"Event '{candidate.title}' missing required field: url")
            return False

        if candidate.start_time is None:
            logger.warning(
                f"Event '{candidate.title}' missing required field: start_time"
            )
            return False

        return True

    @staticmethod
    def generate_event_id(url: str) -> str:
        """
        Generate a stable identifier for an event from its canonical URL.

        Args:
            url: Canonical event URL

        Returns:
            Event ID (SHA256 hex digest)
        """
        return hashlib.sha256(url.encode('utf-8')).hexdigest()
