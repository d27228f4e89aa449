"""Synchronous sync for sources that have no stored events yet."""
import logging
from typing import Dict, Iterable, Optional

from processor.models import Source, SourceKind, SyncResult
from storage.dynamodb_manager import DynamoDBManager
from sync.engine import SyncEngine

logger = logging.getLogger(__name__)


class OnDemandSync:
    """
    Entry point for the serving layer.

    Runs on the caller's thread and blocks until the sync finishes.
    Concurrent triggers for the same source are not de-duplicated.
    """

    def __init__(
        self,
        engine: SyncEngine,
        repository: DynamoDBManager,
        sources: Iterable[Source],
        api_credential: Optional[str] = None,
        api_organization_name: Optional[str] = None
    ):
        self.engine = engine
        self.repository = repository
        self.sources: Dict[str, Source] = {source.source_id: source for source in sources}
        self.api_credential = api_credential
        self.api_organization_name = api_organization_name

    def resolve_source(self, source_id: str) -> Source:
        """
        Look up a configured source, creating an organization source lazily.

        Raises:
            KeyError: If the id is unknown and cannot be an organization
        """
        source = self.sources.get(source_id)
        if source is not None:
            return source

        if source_id.isdigit() and self.api_credential:
            source = Source(
                source_id=source_id,
                name=f"Organization {source_id}",
                origin=source_id,
                kind=SourceKind.API,
                credential=self.api_credential,
                organization_name=self.api_organization_name,
            )
            logger.info(f"Registered organization source {source_id} on first request")
            self.sources[source_id] = source
            return source

        raise KeyError(source_id)

    def ensure_synced(self, source_id: str) -> Optional[SyncResult]:
        """
        Sync the source now if nothing is stored for it yet.

        Returns:
            SyncResult if a sync ran, None if events already existed

        Raises:
            KeyError: Unknown source
            CalendarSyncError: The terminal failure of the sync
        """
        source = self.resolve_source(source_id)

        if self.repository.has_events_for_source(source_id):
            return None

        logger.info(f"No events stored for source {source_id}, syncing now")
        result = self.engine.sync_one(source)
        if result.failure is not None:
            raise result.failure
        return result
