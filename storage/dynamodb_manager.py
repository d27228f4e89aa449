"""DynamoDB repository for sources and events."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.errors import StorageError
from processor.models import Event, Source, SourceKind

logger = logging.getLogger(__name__)

LOCAL_TIME_FORMAT = '%Y-%m-%dT%H:%M:%S'


def format_local_time(value: datetime) -> str:
    """Serialize a wall-clock datetime so that string order is time order."""
    return value.strftime(LOCAL_TIME_FORMAT)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DynamoDBManager:
    """Manager for DynamoDB source and event storage."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    SOURCE_START_INDEX = 'source-start-index'
    EVENT_ID_INDEX = 'event-id-index'

    def __init__(self, events_table_name: str, sources_table_name: str, dynamodb=None):
        """
        Initialize DynamoDB resource and table references.

        Args:
            events_table_name: Table keyed by event url
            sources_table_name: Table keyed by source_id
            dynamodb: Optional boto3 DynamoDB resource
        """
        self.dynamodb = dynamodb or boto3.resource('dynamodb')
        self.events_table = self.dynamodb.Table(events_table_name)
        self.sources_table = self.dynamodb.Table(sources_table_name)
        logger.info(
            f"Initialized DynamoDBManager for tables: "
            f"{events_table_name}, {sources_table_name}"
        )

    # Sources

    def ensure_source(self, source: Source, now: Optional[datetime] = None) -> None:
        """
        Create the source record if absent and refresh its descriptive fields.

        Raises:
            StorageError: If the write fails
        """
        now = now or _utc_now()
        try:
            self.sources_table.update_item(
                Key={'source_id': source.source_id},
                UpdateExpression=(
                    'SET #name = :name, #origin = :origin, #kind = :kind, '
                    '#created_at = if_not_exists(#created_at, :now)'
                ),
                ExpressionAttributeNames={
                    '#name': 'name',
                    '#origin': 'origin',
                    '#kind': 'kind',
                    '#created_at': 'created_at',
                },
                ExpressionAttributeValues={
                    ':name': source.name,
                    ':origin': source.origin,
                    ':kind': source.kind.value,
                    ':now': now.isoformat(),
                }
            )
        except ClientError as e:
            raise StorageError(f"failed to upsert source {source.source_id}: {e}") from e

    def update_source_last_synced(self, source_id: str, when: datetime) -> None:
        """
        Record the time of the last completed sync pass.

        Raises:
            StorageError: If the write fails
        """
        try:
            self.sources_table.update_item(
                Key={'source_id': source_id},
                UpdateExpression='SET #last_synced = :when',
                ExpressionAttributeNames={'#last_synced': 'last_synced'},
                ExpressionAttributeValues={':when': when.isoformat()}
            )
        except ClientError as e:
            raise StorageError(
                f"failed to update last_synced for source {source_id}: {e}"
            ) from e

    def get_source(self, source_id: str) -> Optional[Source]:
        """Fetch a stored source, or None if unknown."""
        try:
            response = self.sources_table.get_item(Key={'source_id': source_id})
        except ClientError as e:
            raise StorageError(f"failed to get source {source_id}: {e}") from e

        item = response.get('Item')
        if not item:
            return None

        last_synced = item.get('last_synced')
        return Source(
            source_id=item['source_id'],
            name=item.get('name', ''),
            origin=item.get('origin', ''),
            kind=SourceKind(item.get('kind', SourceKind.HTML.value)),
            last_synced=datetime.fromisoformat(last_synced) if last_synced else None,
        )

    # Events

    def upsert_event(self, event: Event, now: Optional[datetime] = None) -> None:
        """
        Insert or update an event keyed by its url.

        Mutable fields are overwritten, created_at is kept from the first
        write and updated_at advances on every write.

        Raises:
            StorageError: If the write fails
        """
        now = now or _utc_now()
        fields = {
            'event_id': event.event_id,
            'source_id': event.source_id,
            'title': event.title,
            'start_time': format_local_time(event.start_time),
            'extractor': event.extractor,
            'updated_at': now.isoformat(),
        }
        optional = {
            'description': event.description or None,
            'location': event.location or None,
            'end_time': format_local_time(event.end_time) if event.end_time else None,
        }

        set_fields = dict(fields)
        remove_fields = []
        for name, value in optional.items():
            if value is None:
                remove_fields.append(name)
            else:
                set_fields[name] = value

        expression, names, values = self._build_upsert_expression(set_fields, remove_fields)
        values[':now'] = now.isoformat()

        try:
            self.events_table.update_item(
                Key={'url': event.url},
                UpdateExpression=expression,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
        except ClientError as e:
            raise StorageError(f"failed to upsert event {event.url}: {e}") from e

    @staticmethod
    def _build_upsert_expression(
        set_fields: Dict[str, Any],
        remove_fields: List[str]
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        names = {'#created_at': 'created_at'}
        values = {}
        assignments = []
        for name, value in set_fields.items():
            names[f'#{name}'] = name
            values[f':{name}'] = value
            assignments.append(f'#{name} = :{name}')
        assignments.append('#created_at = if_not_exists(#created_at, :now)')

        expression = 'SET ' + ', '.join(assignments)
        if remove_fields:
            for name in remove_fields:
                names[f'#{name}'] = name
            expression += ' REMOVE ' + ', '.join(f'#{name}' for name in remove_fields)
        return expression, names, values

    def has_events_for_source(self, source_id: str) -> bool:
        """Return True if at least one event is stored for the source."""
        try:
            response = self.events_table.query(
                IndexName=self.SOURCE_START_INDEX,
                KeyConditionExpression=Key('source_id').eq(source_id),
                Limit=1
            )
        except ClientError as e:
            raise StorageError(f"failed to check events for source {source_id}: {e}") from e
        return len(response.get('Items', [])) > 0

    def list_events_in_range(
        self,
        source_id: str,
        start: datetime,
        end: datetime
    ) -> List[Event]:
        """
        List a source's events with start <= start_time < end, by start time.
        """
        start_str = format_local_time(start)
        end_str = format_local_time(end)
        events = self._query_events(
            Key('source_id').eq(source_id) & Key('start_time').between(start_str, end_str)
        )
        return [event for event in events if format_local_time(event.start_time) < end_str]

    def list_upcoming_events(
        self,
        source_id: str,
        now: datetime,
        limit: Optional[int] = None
    ) -> List[Event]:
        """List a source's events starting at or after ``now``, by start time."""
        events = self._query_events(
            Key('source_id').eq(source_id) & Key('start_time').gte(format_local_time(now))
        )
        return events[:limit] if limit is not None else events

    def list_events_for_source(self, source_id: str) -> List[Event]:
        """List all of a source's events, by start time."""
        return self._query_events(Key('source_id').eq(source_id))

    def get_event(self, event_id: str) -> Optional[Event]:
        """Look up an event by its identifier."""
        try:
            response = self.events_table.query(
                IndexName=self.EVENT_ID_INDEX,
                KeyConditionExpression=Key('event_id').eq(event_id),
                Limit=1
            )
        except ClientError as e:
            raise StorageError(f"failed to get event {event_id}: {e}") from e

        items = response.get('Items', [])
        return self._item_to_event(items[0]) if items else None

    def _query_events(self, key_condition) -> List[Event]:
        params = {
            'IndexName': self.SOURCE_START_INDEX,
            'KeyConditionExpression': key_condition,
        }
        try:
            response = self.events_table.query(**params)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.events_table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **params
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            raise StorageError(f"failed to query events: {e}") from e

        events = []
        for item in items:
            event = self._item_to_event(item)
            if event:
                events.append(event)
        return events

    def delete_events_before(self, cutoff: datetime) -> int:
        """
        Delete all events starting before ``cutoff``.

        Returns:
            Count of deleted events
        """
        scan_params = {
            'FilterExpression': Attr('start_time').lt(format_local_time(cutoff)),
        }
        try:
            response = self.events_table.scan(**scan_params)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.events_table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **scan_params
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            raise StorageError(f"failed to scan for old events: {e}") from e

        return self.batch_delete_events([item['url'] for item in items])

    def batch_delete_events(self, urls: List[str]) -> int:
        """
        Delete events in batches of 25 items.

        Args:
            urls: Event urls to delete

        Returns:
            Count of successfully deleted events
        """
        if not urls:
            return 0

        logger.info(f"Deleting {len(urls)} events from DynamoDB")
        success_count = 0

        for i in range(0, len(urls), self.BATCH_SIZE):
            batch = urls[i:i + self.BATCH_SIZE]

            try:
                with self.events_table.batch_writer() as writer:
                    for url in batch:
                        writer.delete_item(Key={'url': url})
                success_count += len(batch)

            except ClientError as e:
                logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                continue

        logger.info(f"Successfully deleted {success_count} events")
        return success_count

    def _item_to_event(self, item: dict) -> Optional[Event]:
        """
        Convert DynamoDB item to Event object.

        Returns:
            Event object or None if conversion fails
        """
        try:
            end_time = item.get('end_time')
            created_at = item.get('created_at')
            updated_at = item.get('updated_at')
            return Event(
                event_id=item['event_id'],
                source_id=item['source_id'],
                title=item['title'],
                start_time=datetime.strptime(item['start_time'], LOCAL_TIME_FORMAT),
                end_time=datetime.strptime(end_time, LOCAL_TIME_FORMAT) if end_time else None,
                url=item['url'],
                description=item.get('description', ''),
                location=item.get('location', ''),
                extractor=item.get('extractor', SourceKind.HTML.value),
                created_at=datetime.fromisoformat(created_at) if created_at else None,
                updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item to Event: {e}")
            return None
