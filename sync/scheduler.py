"""
Periodic synchronization of all configured sources.

Under Lambda the period comes from the EventBridge schedule, and each
invocation calls ``run_all`` once. ``start`` is for a long-running host
process that embeds the runner; that process owns lifecycle and shutdown.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from processor.models import Source, SyncResult
from storage.dynamodb_manager import DynamoDBManager
from sync.engine import SyncEngine

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 6 * 3600


class ScheduleRunner:
    """Runs every source once at startup and then on a fixed interval."""

    JOB_ID = 'sync-all-sources'

    def __init__(
        self,
        sources: List[Source],
        engine: SyncEngine,
        interval_seconds: Optional[float] = None,
        repository: Optional[DynamoDBManager] = None,
        retention_days: Optional[int] = None,
        scheduler: Optional[BackgroundScheduler] = None
    ):
        """
        Initialize the runner.

        Args:
            sources: Sources to synchronize on every run
            engine: Engine used for each source
            interval_seconds: Period between runs (default: 6 hours)
            repository: Store used for the retention sweep
            retention_days: Delete events that started this many days ago
            scheduler: APScheduler instance (default: a BackgroundScheduler)
        """
        self.sources = sources
        self.engine = engine
        self.interval_seconds = interval_seconds or DEFAULT_INTERVAL_SECONDS
        self.repository = repository
        self.retention_days = retention_days
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)

    def start(self) -> None:
        """Schedule run_all immediately and then every interval."""
        logger.info(
            f"Starting scraper scheduler with interval: "
            f"{timedelta(seconds=self.interval_seconds)}"
        )
        self.scheduler.add_job(
            self.run_all,
            'interval',
            seconds=self.interval_seconds,
            next_run_time=datetime.now(timezone.utc),
            id=self.JOB_ID,
            replace_existing=True
        )
        self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def run_all(self) -> List[SyncResult]:
        """
        Synchronize every configured source.

        A failing source is logged and never prevents the others from
        being attempted.

        Returns:
            Results of the sources that completed
        """
        logger.info(f"Starting scrape of {len(self.sources)} sources")
        results = []

        for source in self.sources:
            try:
                results.append(self.engine.sync_one(source))
            except Exception as e:
                logger.error(
                    f"Error scraping source {source.source_id}: {e}",
                    extra={'source_id': source.source_id, 'error_type': type(e).__name__},
                    exc_info=True
                )
                continue

        if self.repository is not None and self.retention_days:
            self.purge_old_events()

        logger.info(
            "Completed scrape of all sources",
            extra={
                'sources_attempted': len(self.sources),
                'sources_completed': len(results),
                'events_written': sum(result.written for result in results),
            }
        )
        return results

    def purge_old_events(self) -> int:
        """Delete events older than the retention period."""
        cutoff = datetime.now() - timedelta(days=self.retention_days)
        try:
            deleted = self.repository.delete_events_before(cutoff)
        except Exception as e:
            logger.error(f"Retention sweep failed: {e}", exc_info=True)
            return 0
        logger.info(f"Retention sweep deleted {deleted} events before {cutoff:%Y-%m-%d}")
        return deleted
