"""Shared fixtures for storage-backed tests."""
import boto3
import pytest
from moto import mock_aws

from storage.dynamodb_manager import DynamoDBManager

EVENTS_TABLE = 'test-calendar-events'
SOURCES_TABLE = 'test-calendar-sources'


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb(aws_credentials):
    """Create mock DynamoDB tables for events and sources."""
    with mock_aws():
        resource = boto3.resource('dynamodb', region_name='us-east-1')

        resource.create_table(
            TableName=EVENTS_TABLE,
            KeySchema=[
                {'AttributeName': 'url', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'url', 'AttributeType': 'S'},
                {'AttributeName': 'event_id', 'AttributeType': 'S'},
                {'AttributeName': 'source_id', 'AttributeType': 'S'},
                {'AttributeName': 'start_time', 'AttributeType': 'S'}
            ],
            GlobalSecondaryIndexes=[
                {
                    'IndexName': DynamoDBManager.SOURCE_START_INDEX,
                    'KeySchema': [
                        {'AttributeName': 'source_id', 'KeyType': 'HASH'},
                        {'AttributeName': 'start_time', 'KeyType': 'RANGE'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'}
                },
                {
                    'IndexName': DynamoDBManager.EVENT_ID_INDEX,
                    'KeySchema': [
                        {'AttributeName': 'event_id', 'KeyType': 'HASH'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'}
                }
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        resource.create_table(
            TableName=SOURCES_TABLE,
            KeySchema=[
                {'AttributeName': 'source_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'source_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield resource


@pytest.fixture
def dynamodb_manager(dynamodb):
    """Create DynamoDBManager instance with mock tables."""
    return DynamoDBManager(EVENTS_TABLE, SOURCES_TABLE, dynamodb=dynamodb)
