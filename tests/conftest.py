"""Pytest fixtures for bellyfed-analytics tests."""

import asyncio
from collections.abc import Awaitable
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from moto import mock_aws

from bellyfed_analytics import AnalyticsEngine, InMemoryStore, Repository, Settings


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    # Unset AWS_ENDPOINT_URL to ensure moto intercepts requests
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


def _patch_aiobotocore_response():
    """
    Patch aiobotocore to work with moto's sync responses.

    Moto returns botocore.awsrequest.AWSResponse which has sync content,
    but aiobotocore expects async content. This patch wraps the response
    handling to convert sync content to async.

    See: https://github.com/aio-libs/aiobotocore/discussions/1300
    """
    from aiobotocore import endpoint

    original_convert = endpoint.convert_to_response_dict

    async def patched_convert(http_response, operation_model):
        # If content is not awaitable (moto's sync response), wrap it
        if hasattr(http_response, "_content") and not isinstance(http_response._content, Awaitable):
            fut: asyncio.Future[bytes] = asyncio.Future()
            fut.set_result(http_response.content)
            http_response._content = fut
        return await original_convert(http_response, operation_model)

    return patch.object(endpoint, "convert_to_response_dict", patched_convert)


@pytest.fixture
def mock_dynamodb(aws_credentials):
    """Mock DynamoDB for tests (sync boto3 and async aioboto3 clients)."""
    with mock_aws(), _patch_aiobotocore_response():
        yield


@pytest.fixture
def clock():
    """Clock frozen at 2024-06-15 12:30:45 UTC."""
    return FrozenClock(datetime(2024, 6, 15, 12, 30, 45, tzinfo=UTC))


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
async def engine(clock):
    """In-memory engine sharing the frozen clock."""
    async with AnalyticsEngine.in_memory(clock=clock) as engine:
        yield engine


@pytest.fixture
async def repo(mock_dynamodb):
    """Repository backed by a moto table."""
    repo = Repository(table_name="test-analytics", region="us-east-1")
    await repo.create_table()
    yield repo
    await repo.close()


@pytest.fixture
async def dynamodb_engine(mock_dynamodb, clock):
    """Engine backed by moto tables."""
    store = Repository(table_name="test-analytics", region="us-east-1")
    cache_store = Repository(table_name="test-analytics-cache", region="us-east-1")
    await store.create_table()
    await cache_store.create_table()
    async with AnalyticsEngine(
        store, cache_store=cache_store, settings=Settings(), clock=clock
    ) as engine:
        yield engine
