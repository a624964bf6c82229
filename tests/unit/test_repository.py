"""Unit tests for the DynamoDB Repository."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import boto3
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from bellyfed_analytics.exceptions import TransientStorageError
from bellyfed_analytics.repository import Repository


def _client_error(code: str, operation: str = "UpdateItem") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def mock_client():
    """Repository with a mocked low-level client."""
    repo = Repository(
        table_name="mocked", region="us-east-1", timeout_seconds=0.05, max_attempts=1
    )
    client = MagicMock()
    with patch.object(repo, "_get_client", AsyncMock(return_value=client)):
        yield repo, client


class TestTableManagement:
    async def test_create_table_enables_ttl(self, repo):
        client = boto3.client("dynamodb", region_name="us-east-1")

        description = client.describe_table(TableName="test-analytics")["Table"]
        assert description["GlobalSecondaryIndexes"][0]["IndexName"] == "GSI1"

        ttl = client.describe_time_to_live(TableName="test-analytics")
        assert ttl["TimeToLiveDescription"]["AttributeName"] == "ttl"
        assert ttl["TimeToLiveDescription"]["TimeToLiveStatus"] == "ENABLED"

    async def test_create_table_is_idempotent(self, repo):
        await repo.create_table()

    async def test_delete_table(self, repo):
        await repo.delete_table()

        client = boto3.client("dynamodb", region_name="us-east-1")
        assert "test-analytics" not in client.list_tables()["TableNames"]

    async def test_delete_missing_table_is_noop(self, repo):
        await repo.delete_table()
        await repo.delete_table()

    async def test_context_manager_closes_client(self, mock_dynamodb):
        async with Repository(table_name="ctx", region="us-east-1") as repo:
            assert repo._client is not None
        assert repo._client is None


class TestErrorMapping:
    @pytest.mark.parametrize(
        "code",
        ["ProvisionedThroughputExceededException", "ThrottlingException", "InternalServerError"],
    )
    async def test_transient_client_errors(self, mock_client, code):
        repo, client = mock_client
        client.get_item = AsyncMock(side_effect=_client_error(code, "GetItem"))

        with pytest.raises(TransientStorageError) as exc_info:
            await repo.get("restaurant#r1", "VIEWS")

        assert exc_info.value.retryable
        assert exc_info.value.operation == "get_item"
        assert exc_info.value.table_name == "mocked"
        assert isinstance(exc_info.value.cause, ClientError)

    async def test_other_client_errors_propagate(self, mock_client):
        repo, client = mock_client
        client.get_item = AsyncMock(side_effect=_client_error("ResourceNotFoundException"))

        with pytest.raises(ClientError):
            await repo.get("restaurant#r1", "VIEWS")

    async def test_connection_error(self, mock_client):
        repo, client = mock_client
        client.put_item = AsyncMock(
            side_effect=EndpointConnectionError(endpoint_url="http://localhost:1")
        )

        with pytest.raises(TransientStorageError, match="unreachable"):
            await repo.put("home", "DATA", {"value": "1"})

    async def test_timeout(self, mock_client):
        repo, client = mock_client

        async def slow_get(**kwargs):
            await asyncio.sleep(1)

        client.get_item = slow_get

        with pytest.raises(TransientStorageError, match="timed out"):
            await repo.get("restaurant#r1", "VIEWS")


class TestNestedMapInitialization:
    async def test_retries_once_after_initializing_maps(self, mock_client):
        repo, client = mock_client
        client.update_item = AsyncMock(
            side_effect=[
                _client_error("ValidationException"),
                {},
                {
                    "Attributes": {
                        "totalEvents": {"N": "1"},
                        "eventsByType": {"M": {"like": {"N": "1"}}},
                    }
                },
            ]
        )

        record = await repo.update_counters(
            "dish#d1", "ROLLUP", counters={"totalEvents": 1}, nested={"eventsByType": {"like": 1}}
        )

        assert record == {"totalEvents": 1, "eventsByType": {"like": 1}}
        init_call = client.update_item.call_args_list[1].kwargs
        assert init_call["UpdateExpression"] == "SET #m0 = if_not_exists(#m0, :empty)"
        assert init_call["ExpressionAttributeNames"] == {"#m0": "eventsByType"}

    async def test_validation_error_without_nested_propagates(self, mock_client):
        repo, client = mock_client
        client.update_item = AsyncMock(side_effect=_client_error("ValidationException"))

        with pytest.raises(ClientError):
            await repo.update_counters("dish#d1", "ROLLUP", counters={"totalEvents": 1})
        assert client.update_item.call_count == 1

    async def test_second_failure_propagates(self, mock_client):
        repo, client = mock_client
        client.update_item = AsyncMock(
            side_effect=[
                _client_error("ValidationException"),
                {},
                _client_error("ValidationException"),
            ]
        )

        with pytest.raises(ClientError):
            await repo.update_counters("dish#d1", "ROLLUP", nested={"eventsByType": {"like": 1}})
        assert client.update_item.call_count == 3


class TestSerialization:
    def test_round_trip(self):
        repo = Repository()
        value = {
            "s": "x",
            "n": 3,
            "f": 1.5,
            "b": False,
            "none": None,
            "list": [1, "a"],
            "set": {"u1", "u2"},
        }

        serialized = repo._serialize_map(value)
        assert serialized["set"] == {"SS": ["u1", "u2"]}
        assert serialized["b"] == {"BOOL": False}

        assert repo._deserialize_item(serialized) == value

    def test_number_set(self):
        assert Repository()._deserialize_value({"NS": ["1", "2.5"]}) == {1, 2.5}
