"""Integration tests for Lambda handler."""
import json
import logging
from unittest.mock import Mock, patch

import pytest

from lambda_function import JsonFormatter, lambda_handler, setup_logging
from processor.errors import ConfigError, FetchError
from processor.models import Source, SourceKind, SyncResult
from settings import AppConfig, StorageConfig


@pytest.fixture
def app_config():
    """Create a configuration with one site and one organization."""
    return AppConfig(
        storage=StorageConfig(
            events_table_name='test-calendar-events',
            sources_table_name='test-calendar-sources'
        ),
        sources=[
            Source(source_id='berlin', name='Berlin', origin='https://example.org/{page}'),
            Source(source_id='123', name='Kreisverband', origin='123', kind=SourceKind.API),
        ]
    )


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.memory_limit_in_mb = 512
    context.invoked_function_arn = 'arn:aws:lambda:eu-central-1:123456789012:function:test-function'
    context.aws_request_id = 'test-request-id'
    return context


class TestScheduledSync:
    """Test cases for scheduled invocations."""

    @patch('lambda_function.ScheduleRunner')
    @patch('lambda_function.DynamoDBManager')
    @patch('lambda_function.load_config')
    def test_successful_sync(
        self,
        mock_load_config,
        mock_dynamodb_class,
        mock_runner_class,
        app_config,
        mock_context
    ):
        """Test successful sync of every configured source."""
        mock_load_config.return_value = app_config
        mock_runner = Mock()
        mock_runner.run_all.return_value = [
            SyncResult('berlin', written=5, skipped=1, pages_fetched=2),
            SyncResult('123', written=3, errors=['throttled']),
        ]
        mock_runner_class.return_value = mock_runner

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['message'] == 'Sync completed successfully'
        assert body['statistics']['sources_configured'] == 2
        assert body['statistics']['sources_synced'] == 2
        assert body['statistics']['events_written'] == 8
        assert body['statistics']['events_skipped'] == 1
        assert 'duration_seconds' in body['statistics']
        assert body['errors'] == {'123': ['throttled']}

        mock_dynamodb_class.assert_called_once_with(
            events_table_name='test-calendar-events',
            sources_table_name='test-calendar-sources'
        )
        assert mock_runner_class.call_args.kwargs['sources'] == app_config.sources
        mock_runner.run_all.assert_called_once()
        mock_runner.start.assert_not_called()

    @patch('lambda_function.load_config')
    def test_invalid_configuration(self, mock_load_config, mock_context):
        """Test that configuration errors are reported without syncing."""
        mock_load_config.side_effect = ConfigError('scraper.interval: must be positive')

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Invalid configuration'
        assert body['error_type'] == 'ConfigError'

    @patch('lambda_function.ScheduleRunner')
    @patch('lambda_function.DynamoDBManager')
    @patch('lambda_function.load_config')
    def test_unexpected_failure(
        self,
        mock_load_config,
        mock_dynamodb_class,
        mock_runner_class,
        app_config,
        mock_context
    ):
        """Test error handling for failures outside the per-source isolation."""
        mock_load_config.return_value = app_config
        mock_runner_class.return_value.run_all.side_effect = Exception('DynamoDB error')

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Sync failed'
        assert 'DynamoDB error' in body['error']
        assert body['error_type'] == 'Exception'
        assert 'duration_seconds' in body

    @patch('lambda_function.ScheduleRunner')
    @patch('lambda_function.DynamoDBManager')
    @patch('lambda_function.load_config')
    @patch('lambda_function.setup_logging')
    def test_logging_output(
        self,
        mock_setup_logging,
        mock_load_config,
        mock_dynamodb_class,
        mock_runner_class,
        app_config,
        mock_context,
        caplog
    ):
        """Test that logging output is generated correctly."""
        mock_load_config.return_value = app_config
        mock_runner_class.return_value.run_all.return_value = []

        with caplog.at_level(logging.INFO, logger='lambda_function'):
            response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 200
        log_messages = [record.message for record in caplog.records]
        assert any('Lambda execution started' in msg for msg in log_messages)
        assert any('Lambda execution completed successfully' in msg for msg in log_messages)


class TestOnDemandSync:
    """Test cases for invocations naming a single source."""

    @patch('lambda_function.OnDemandSync')
    @patch('lambda_function.DynamoDBManager')
    @patch('lambda_function.load_config')
    def test_source_synced(
        self,
        mock_load_config,
        mock_dynamodb_class,
        mock_on_demand_class,
        app_config,
        mock_context
    ):
        mock_load_config.return_value = app_config
        mock_on_demand_class.return_value.ensure_synced.return_value = SyncResult(
            'berlin', written=4, pages_fetched=2
        )

        response = lambda_handler({'source_id': 'berlin'}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['source_id'] == 'berlin'
        assert body['statistics']['events_written'] == 4
        assert body['statistics']['pages_fetched'] == 2
        mock_on_demand_class.return_value.ensure_synced.assert_called_once_with('berlin')

    @patch('lambda_function.OnDemandSync')
    @patch('lambda_function.DynamoDBManager')
    @patch('lambda_function.load_config')
    def test_source_already_populated(
        self,
        mock_load_config,
        mock_dynamodb_class,
        mock_on_demand_class,
        app_config,
        mock_context
    ):
        mock_load_config.return_value = app_config
        mock_on_demand_class.return_value.ensure_synced.return_value = None

        response = lambda_handler({'source_id': 'berlin'}, mock_context)

        assert response['statusCode'] == 200
        assert json.loads(response['body'])['message'] == 'Source already has events'

    @patch('lambda_function.OnDemandSync')
    @patch('lambda_function.DynamoDBManager')
    @patch('lambda_function.load_config')
    def test_unknown_source(
        self,
        mock_load_config,
        mock_dynamodb_class,
        mock_on_demand_class,
        app_config,
        mock_context
    ):
        mock_load_config.return_value = app_config
        mock_on_demand_class.return_value.ensure_synced.side_effect = KeyError('hamburg')

        response = lambda_handler({'source_id': 'hamburg'}, mock_context)

        assert response['statusCode'] == 404

    @patch('lambda_function.OnDemandSync')
    @patch('lambda_function.DynamoDBManager')
    @patch('lambda_function.load_config')
    def test_sync_failure(
        self,
        mock_load_config,
        mock_dynamodb_class,
        mock_on_demand_class,
        app_config,
        mock_context
    ):
        mock_load_config.return_value = app_config
        mock_on_demand_class.return_value.ensure_synced.side_effect = FetchError(
            'HTTP status 503', status_code=503
        )

        response = lambda_handler({'source_id': 'berlin'}, mock_context)

        assert response['statusCode'] == 502
        body = json.loads(response['body'])
        assert body['error_type'] == 'FetchError'


class TestSetupLogging:
    """Test cases for logging setup."""

    def test_setup_logging_default_level(self):
        """Test logging setup with default INFO level."""
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_debug_level(self):
        """Test logging setup with DEBUG level."""
        setup_logging('DEBUG')
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_unknown_level(self):
        setup_logging('LOUD')
        assert logging.getLogger().level == logging.INFO

    def test_json_formatter(self):
        record = logging.LogRecord('sync', logging.WARNING, __file__, 1, 'page %d failed', (3,), None)

        data = json.loads(JsonFormatter().format(record))

        assert data['level'] == 'WARNING'
        assert data['message'] == 'page 3 failed'
        assert data['logger'] == 'sync'
