"""
Pytest configuration and shared fixtures for the module contracts.

This module provides common test fixtures and configuration used across
the unit tests.
"""

import json
import os
from typing import Any, Callable, Dict, Optional
from unittest.mock import Mock

import pytest

from infra_modules.models.common import AwsContext

ACCOUNT_ID = "123456789012"


@pytest.fixture(scope="session", autouse=True)
def test_environment():
    """Set up test environment variables."""
    os.environ.update({
        "AWS_DEFAULT_REGION": "us-east-1",
        "AWS_REGION": "us-east-1",
        "TARGET_ACCOUNT_ID": ACCOUNT_ID,
        "TARGET_PARTITION": "aws",
        "DEFAULT_TAGS": '{"ManagedBy": "infra-modules"}',
        "ENVIRONMENT": "test",
        "POWERTOOLS_SERVICE_NAME": "test-infra-module-contracts",
        "POWERTOOLS_METRICS_NAMESPACE": "TestInfraModuleContracts",
        "LOG_LEVEL": "DEBUG",
        "POWERTOOLS_TRACE_DISABLED": "true",
        "MAX_REQUEST_SIZE_KB": "64",
    })


@pytest.fixture
def aws_context() -> AwsContext:
    """AWS context shared by renderer tests."""
    return AwsContext(
        region="us-east-1",
        account_id=ACCOUNT_ID,
        default_tags={"Environment": "test"},
    )


@pytest.fixture
def lambda_context():
    """Mock Lambda context for handler tests."""
    context = Mock()
    context.function_name = "test-module-contracts"
    context.function_version = "1"
    context.invoked_function_arn = f"arn:aws:lambda:us-east-1:{ACCOUNT_ID}:function:test-module-contracts"
    context.memory_limit_in_mb = "512"
    context.remaining_time_in_millis = lambda: 30000
    context.aws_request_id = "test-request-id-123"
    context.log_group_name = "/aws/lambda/test-module-contracts"
    context.log_stream_name = "2024/01/01/[$LATEST]test123"
    return context


@pytest.fixture
def api_gateway_event() -> Callable[..., Dict[str, Any]]:
    """Factory for API Gateway REST events."""

    def make_event(method: str, path: str, body: Optional[Any] = None) -> Dict[str, Any]:
        if body is not None and not isinstance(body, str):
            body = json.dumps(body)
        return {
            "resource": path,
            "httpMethod": method,
            "path": path,
            "headers": {
                "Content-Type": "application/json",
                "User-Agent": "test-agent/1.0",
            },
            "multiValueHeaders": {},
            "body": body,
            "requestContext": {
                "requestId": "test-request-id-123",
                "accountId": ACCOUNT_ID,
                "stage": "test",
                "httpMethod": method,
                "path": path,
                "resourcePath": path,
                "protocol": "HTTP/1.1",
                "requestTime": "01/Jan/2024:12:00:00 +0000",
                "requestTimeEpoch": 1704110400000,
                "identity": {
                    "sourceIp": "127.0.0.1",
                    "userAgent": "test-agent/1.0",
                },
            },
            "pathParameters": None,
            "queryStringParameters": None,
            "multiValueQueryStringParameters": None,
            "stageVariables": None,
            "isBase64Encoded": False,
        }

    return make_event


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "benchmark: Performance benchmark tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "benchmark" in str(item.fspath):
            item.add_marker(pytest.mark.benchmark)
