"""
Pytest configuration and shared fixtures for the Pulse MCP server tests.
"""

import os

import boto3
import pytest
from moto import mock_aws

from pulse_mcp.core.config import DynamoDBConfig


@pytest.fixture
def clean_environment(monkeypatch):
    """Remove server configuration variables that could leak in from the shell."""
    prefixes = ("DYNAMODB_", "GMAIL_", "GCAL_", "APPSIGNAL_", "GOOD_EGGS_", "PULSEMCP_",
                "SSH_", "GCS_", "PROCTOR_")
    names = ("TOOL_GROUPS", "ENABLED_TOOLGROUPS", "SKIP_HEALTH_CHECKS", "HEALTH_CHECK_TIMEOUT",
             "HEADLESS", "TIMEOUT", "LOG_LEVEL", "LOG_FORMAT")
    for key in list(os.environ):
        if key.startswith(prefixes) or key in names:
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def mock_aws_credentials(monkeypatch):
    """Mocked AWS Credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def mock_dynamodb_table(mock_aws_credentials):
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")

        table = dynamodb.create_table(
            TableName="test-orders",
            KeySchema=[
                {"AttributeName": "customer_id", "KeyType": "HASH"},
                {"AttributeName": "order_id", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "customer_id", "AttributeType": "S"},
                {"AttributeName": "order_id", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )

        yield table


@pytest.fixture
def dynamodb_config():
    return DynamoDBConfig(region="us-east-1")


@pytest.fixture
def sample_orders():
    """Sample order items for DynamoDB tests."""
    return [
        {"customer_id": "c-1", "order_id": "o-1", "total": 19.99, "status": "shipped"},
        {"customer_id": "c-1", "order_id": "o-2", "total": 5, "status": "pending"},
        {"customer_id": "c-2", "order_id": "o-3", "total": 42.5, "status": "shipped"},
    ]
