"""Synchronization of one source into the event store."""
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from processor.errors import FetchError, ParseError, StorageError
from processor.event_processor import EventProcessor
from processor.models import CandidateEvent, Source, SourceKind, SyncResult
from scraper.api_extractor import APIExtractor
from scraper.fetcher import HttpFetcher
from scraper.html_extractor import HTMLExtractor
from storage.dynamodb_manager import DynamoDBManager

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Drives fetch, extract and upsert for a single source.

    The engine keeps no per-run state, so the scheduler and the on-demand
    trigger can share one instance.
    """

    def __init__(
        self,
        repository: DynamoDBManager,
        fetcher: HttpFetcher,
        html_extractor: HTMLExtractor,
        api_extractor: APIExtractor,
        processor: Optional[EventProcessor] = None,
        max_pages: int = 10,
        start_page: int = 0,
        page_delay: float = 1,
        fetch_retries: int = 3
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.html_extractor = html_extractor
        self.api_extractor = api_extractor
        self.processor = processor or EventProcessor()
        self.max_pages = max_pages
        self.start_page = start_page
        self.page_delay = page_delay
        self.fetch_retries = fetch_retries

    def sync_one(self, source: Source) -> SyncResult:
        """
        Synchronize one source.

        Per-page and per-event failures are recorded on the result; the
        last-synced marker is updated whatever the outcome.

        Args:
            source: Source to synchronize

        Returns:
            SyncResult with written/skipped counts and any failure

        Raises:
            StorageError: If the source record cannot be ensured
        """
        logger.info(f"Syncing source: {source.name} ({source.source_id})")
        self.repository.ensure_source(source)

        result = SyncResult(source_id=source.source_id)

        if source.kind == SourceKind.API:
            self._sync_api(source, result)
        else:
            self._sync_html(source, result)

        try:
            self.repository.update_source_last_synced(
                source.source_id, datetime.now(timezone.utc)
            )
        except StorageError as e:
            logger.error(f"Failed to update last_synced for source {source.source_id}: {e}")
            result.errors.append(str(e))

        logger.info(
            f"Synced {result.written} events from source {source.source_id}",
            extra={
                'source_id': source.source_id,
                'events_written': result.written,
                'events_skipped': result.skipped,
                'pages_fetched': result.pages_fetched,
                'failed': result.failure is not None,
            }
        )
        return result

    def _sync_html(self, source: Source, result: SyncResult) -> None:
        last_page = self.start_page + self.max_pages - 1
        for page in range(self.start_page, last_page + 1):
            page_url = self.build_page_url(source.origin, page)
            logger.info(f"Fetching page {page}: {page_url}")

            try:
                html = self._fetch_page(page_url)
                result.pages_fetched += 1
                candidates = self.html_extractor.extract(html, page_url)
            except (FetchError, ParseError) as e:
                logger.error(f"Failed to load page {page} of source {source.source_id}: {e}")
                result.failure = e
                result.errors.append(f"page {page}: {e}")
                break

            if not candidates:
                logger.info(f"No events found on page {page}, stopping")
                break

            self._store(candidates, source, result)

            if page < last_page:
                time.sleep(self.page_delay)

    def _sync_api(self, source: Source, result: SyncResult) -> None:
        try:
            candidates = self.api_extractor.fetch_all(source)
        except (FetchError, ParseError) as e:
            logger.error(f"Failed to fetch events for organization {source.origin}: {e}")
            result.failure = e
            result.errors.append(str(e))
            return
        result.pages_fetched = 1

        if source.organization_name:
            matching = [
                candidate for candidate in candidates
                if candidate.organization == source.organization_name
            ]
            result.skipped += len(candidates) - len(matching)
            candidates = matching

        self._store(candidates, source, result)

    def _store(self, candidates: List[CandidateEvent], source: Source, result: SyncResult) -> None:
        events = self.processor.process_events(candidates, source)
        result.skipped += len(candidates) - len(events)

        for event in events:
            try:
                self.repository.upsert_event(event)
            except StorageError as e:
                logger.warning(f"Failed to upsert event {event.title}: {e}")
                result.skipped += 1
                result.errors.append(str(e))
                continue
            result.written += 1

    def _fetch_page(self, url: str) -> str:
        """
        Fetch a listing page with retry logic.

        Raises:
            FetchError: If all retry attempts fail
        """
        base_delay = 1  # seconds

        for attempt in range(self.fetch_retries):
            try:
                response = self.fetcher.get(url)
                if response.status_code != 200:
                    raise FetchError(
                        f"HTTP status {response.status_code}",
                        status_code=response.status_code
                    )
                return response.text

            except FetchError as e:
                if attempt < self.fetch_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.fetch_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.fetch_retries} attempts failed. Last error: {e}"
                    )
                    raise

    @staticmethod
    def build_page_url(url_template: str, page: int) -> str:
        return url_template.replace('{page}', str(page))
