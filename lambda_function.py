"""AWS Lambda handler for the events calendar sync."""
import json
import logging
import os
import time
from typing import Any, Dict

from processor.errors import CalendarSyncError, ConfigError
from processor.event_processor import EventProcessor
from scraper.api_extractor import APIExtractor
from scraper.fetcher import HttpFetcher
from scraper.html_extractor import HTMLExtractor
from settings import AppConfig, load_config
from storage.dynamodb_manager import DynamoDBManager
from sync.engine import SyncEngine
from sync.on_demand import OnDemandSync
from sync.scheduler import ScheduleRunner


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_engine(config: AppConfig, repository: DynamoDBManager) -> SyncEngine:
    """Wire a SyncEngine from configuration."""
    fetcher = HttpFetcher(
        timeout=config.scraper.timeout,
        user_agent=config.scraper.user_agent
    )
    return SyncEngine(
        repository=repository,
        fetcher=fetcher,
        html_extractor=HTMLExtractor(),
        api_extractor=APIExtractor(
            fetcher,
            api_url=config.zetkin.api_url,
            timezone=config.scraper.timezone
        ),
        processor=EventProcessor(),
        max_pages=config.scraper.max_pages,
        start_page=config.scraper.start_page,
        page_delay=config.scraper.page_delay,
        fetch_retries=config.scraper.fetch_retries
    )


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    A scheduled (EventBridge) invocation syncs every configured source. A
    payload with a ``source_id`` runs the on-demand sync for that source.

    Args:
        event: Invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    logger = logging.getLogger(__name__)
    start_time = time.time()

    try:
        config = load_config()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}", exc_info=True)
        return _response(500, {
            'message': 'Invalid configuration',
            'error': str(e),
            'error_type': type(e).__name__
        })

    setup_logging(config.log_level)
    source_id = (event or {}).get('source_id')

    logger.info(
        "Lambda execution started",
        extra={
            'events_table': config.storage.events_table_name,
            'sources': len(config.sources),
            'source_id': source_id
        }
    )

    try:
        repository = DynamoDBManager(
            events_table_name=config.storage.events_table_name,
            sources_table_name=config.storage.sources_table_name
        )
        engine = build_engine(config, repository)

        if source_id:
            return _run_on_demand(config, engine, repository, str(source_id), start_time)

        runner = ScheduleRunner(
            sources=config.sources,
            engine=engine,
            interval_seconds=config.scraper.interval,
            repository=repository,
            retention_days=config.scraper.retention_days
        )
        results = runner.run_all()

        duration = time.time() - start_time
        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'sources_synced': len(results)
            }
        )

        return _response(200, {
            'message': 'Sync completed successfully',
            'statistics': {
                'sources_configured': len(config.sources),
                'sources_synced': len(results),
                'events_written': sum(result.written for result in results),
                'events_skipped': sum(result.skipped for result in results),
                'duration_seconds': round(duration, 2)
            },
            'errors': {
                result.source_id: result.errors
                for result in results if result.errors
            }
        })

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Sync failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })


def _run_on_demand(
    config: AppConfig,
    engine: SyncEngine,
    repository: DynamoDBManager,
    source_id: str,
    start_time: float
) -> Dict[str, Any]:
    logger = logging.getLogger(__name__)
    on_demand = OnDemandSync(
        engine=engine,
        repository=repository,
        sources=config.sources,
        api_credential=config.zetkin.cookie,
        api_organization_name=config.zetkin.organization_name
    )

    try:
        result = on_demand.ensure_synced(source_id)
    except KeyError:
        return _response(404, {'message': 'Source not found', 'source_id': source_id})
    except CalendarSyncError as e:
        logger.error(
            f"On-demand sync failed for source {source_id}: {e}",
            extra={'error_type': type(e).__name__}
        )
        return _response(502, {
            'message': 'Failed to sync source',
            'source_id': source_id,
            'error_type': type(e).__name__
        })

    duration = round(time.time() - start_time, 2)
    if result is None:
        return _response(200, {
            'message': 'Source already has events',
            'source_id': source_id,
            'duration_seconds': duration
        })

    return _response(200, {
        'message': 'Sync completed successfully',
        'source_id': source_id,
        'statistics': {
            'events_written': result.written,
            'events_skipped': result.skipped,
            'pages_fetched': result.pages_fetched,
            'duration_seconds': duration
        },
        'errors': result.errors
    })
