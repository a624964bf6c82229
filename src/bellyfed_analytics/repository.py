"""DynamoDB repository for analytics counters and cache entries."""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import aioboto3  # type: ignore[import-untyped]
from aiobotocore.config import AioConfig
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from . import schema
from .exceptions import TransientStorageError

logger = logging.getLogger(__name__)

# ClientError codes worth a redelivery
TRANSIENT_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailable",
    }
)

_CONNECTION_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
)


class Repository:
    """
    Async DynamoDB implementation of StoreProtocol.

    Every call is bounded by ``timeout_seconds`` (botocore connect/read
    timeouts plus an overall ``asyncio.wait_for``). Throttling, timeouts and
    connection failures surface as TransientStorageError; every other error
    propagates unchanged.

    The client is created lazily on first use and released by close().
    Lifecycle belongs to the process entry point, not to components.
    """

    def __init__(
        self,
        table_name: str = schema.DEFAULT_TABLE_NAME,
        region: str | None = None,
        endpoint_url: str | None = None,
        timeout_seconds: float = 5.0,
        max_attempts: int = 3,
    ) -> None:
        self._table_name = table_name
        self.region = region
        self.endpoint_url = endpoint_url
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self._session: aioboto3.Session | None = None
        self._client: Any = None

    @property
    def table_name(self) -> str:
        return self._table_name

    async def __aenter__(self) -> "Repository":
        await self._get_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _get_client(self) -> Any:
        """Get or create the DynamoDB client."""
        if self._client is None:
            self._session = aioboto3.Session()
            self._client = await self._session.client(
                "dynamodb",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
                config=AioConfig(
                    connect_timeout=self.timeout_seconds,
                    read_timeout=self.timeout_seconds,
                    retries={"max_attempts": self.max_attempts, "mode": "standard"},
                ),
            ).__aenter__()
        return self._client

    async def close(self) -> None:
        """Close the DynamoDB client."""
        if self._client is not None:
            await self._client.__aexit__(None, None, None)
            self._client = None
            self._session = None

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        """Invoke a client operation with a bounded timeout and error mapping."""
        client = await self._get_client()
        try:
            response: dict[str, Any] = await asyncio.wait_for(
                getattr(client, operation)(**kwargs),
                timeout=self.timeout_seconds * self.max_attempts,
            )
            return response
        except TimeoutError as e:
            raise TransientStorageError(
                "Storage operation timed out",
                e,
                operation=operation,
                table_name=self._table_name,
            ) from e
        except ClientError as e:
            code = e.response["Error"]["Code"]
            if code in TRANSIENT_ERROR_CODES:
                raise TransientStorageError(
                    f"Storage operation failed: {code}",
                    e,
                    operation=operation,
                    table_name=self._table_name,
                ) from e
            raise
        except _CONNECTION_ERRORS as e:
            raise TransientStorageError(
                "Storage endpoint unreachable",
                e,
                operation=operation,
                table_name=self._table_name,
            ) from e

    def _key(self, pk: str, sk: str) -> dict[str, Any]:
        return {schema.ATTR_PK: {"S": pk}, schema.ATTR_SK: {"S": sk}}

    # -------------------------------------------------------------------------
    # Table operations
    # -------------------------------------------------------------------------

    async def create_table(self) -> None:
        """Create the DynamoDB table (with TTL enabled) if it doesn't exist."""
        client = await self._get_client()
        definition = schema.get_table_definition(self._table_name)

        try:
            await client.create_table(**definition)
            # Wait for table to be active
            waiter = client.get_waiter("table_exists")
            await waiter.wait(TableName=self._table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceInUseException":
                raise
            return

        await client.update_time_to_live(
            TableName=self._table_name,
            TimeToLiveSpecification={"Enabled": True, "AttributeName": schema.ATTR_TTL},
        )

    async def delete_table(self) -> None:
        """Delete the DynamoDB table."""
        client = await self._get_client()
        try:
            await client.delete_table(TableName=self._table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise

    # -------------------------------------------------------------------------
    # Counters
    # -------------------------------------------------------------------------

    async def update_counters(
        self,
        pk: str,
        sk: str,
        counters: Mapping[str, int] | None = None,
        nested: Mapping[str, Mapping[str, int]] | None = None,
        set_fields: Mapping[str, Any] | None = None,
        if_absent: Mapping[str, Any] | None = None,
        ttl: int | None = None,
    ) -> dict[str, Any]:
        """
        Apply counter deltas with a single UpdateItem.

        DynamoDB cannot ADD into a map that does not exist yet ("document
        path invalid"), and it cannot SET the map and ADD into it in the same
        expression (overlapping paths). On that ValidationException the maps
        are initialized with an idempotent ``if_not_exists`` SET and the
        original ADD is retried once, so no increment is lost.
        """
        request = self._build_counter_update(pk, sk, counters, nested, set_fields, if_absent, ttl)

        try:
            response = await self._call("update_item", **request)
        except ClientError as e:
            if not nested or e.response["Error"]["Code"] != "ValidationException":
                raise
            await self._initialize_maps(pk, sk, list(nested))
            response = await self._call("update_item", **request)

        return self._deserialize_item(response.get("Attributes", {}))

    def _build_counter_update(
        self,
        pk: str,
        sk: str,
        counters: Mapping[str, int] | None,
        nested: Mapping[str, Mapping[str, int]] | None,
        set_fields: Mapping[str, Any] | None,
        if_absent: Mapping[str, Any] | None,
        ttl: int | None,
    ) -> dict[str, Any]:
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        set_parts: list[str] = []
        add_parts: list[str] = []

        def placeholder(attr: str) -> str:
            token = f"#a{len(names)}"
            names[token] = attr
            return token

        def value(raw: Any) -> str:
            token = f":v{len(values)}"
            values[token] = self._serialize_value(raw)
            return token

        for attr, raw in (set_fields or {}).items():
            set_parts.append(f"{placeholder(attr)} = {value(raw)}")
        for attr, raw in (if_absent or {}).items():
            token = placeholder(attr)
            set_parts.append(f"{token} = if_not_exists({token}, {value(raw)})")
        if ttl is not None:
            set_parts.append(f"{placeholder(schema.ATTR_TTL)} = {value(ttl)}")
        for attr, delta in (counters or {}).items():
            add_parts.append(f"{placeholder(attr)} {value(delta)}")
        for map_attr, deltas in (nested or {}).items():
            map_token = placeholder(map_attr)
            for key, delta in deltas.items():
                add_parts.append(f"{map_token}.{placeholder(key)} {value(delta)}")

        expression = []
        if set_parts:
            expression.append("SET " + ", ".join(set_parts))
        if add_parts:
            expression.append("ADD " + ", ".join(add_parts))

        request: dict[str, Any] = {
            "TableName": self._table_name,
            "Key": self._key(pk, sk),
            "UpdateExpression": " ".join(expression),
            "ReturnValues": "ALL_NEW",
        }
        if names:
            request["ExpressionAttributeNames"] = names
        if values:
            request["ExpressionAttributeValues"] = values
        return request

    async def _initialize_maps(self, pk: str, sk: str, map_attrs: list[str]) -> None:
        """Create empty maps without touching maps that already exist."""
        names = {f"#m{i}": attr for i, attr in enumerate(map_attrs)}
        parts = [f"{token} = if_not_exists({token}, :empty)" for token in names]
        await self._call(
            "update_item",
            TableName=self._table_name,
            Key=self._key(pk, sk),
            UpdateExpression="SET " + ", ".join(parts),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues={":empty": {"M": {}}},
        )
        logger.debug("Initialized counter maps", extra={"pk": pk, "sk": sk, "maps": map_attrs})

    async def add_to_set(
        self,
        pk: str,
        sk: str,
        field: str,
        values: set[str],
        set_fields: Mapping[str, Any] | None = None,
        ttl: int | None = None,
    ) -> None:
        """Union values into a string set with ADD (DynamoDB rejects empty sets)."""
        if not values:
            return

        names = {"#set": field}
        expr_values: dict[str, Any] = {":members": {"SS": sorted(values)}}
        set_parts = []
        for i, (attr, raw) in enumerate((set_fields or {}).items()):
            names[f"#f{i}"] = attr
            expr_values[f":f{i}"] = self._serialize_value(raw)
            set_parts.append(f"#f{i} = :f{i}")
        if ttl is not None:
            names["#ttl"] = schema.ATTR_TTL
            expr_values[":ttl"] = {"N": str(ttl)}
            set_parts.append("#ttl = :ttl")

        expression = "ADD #set :members"
        if set_parts:
            expression = "SET " + ", ".join(set_parts) + " " + expression

        await self._call(
            "update_item",
            TableName=self._table_name,
            Key=self._key(pk, sk),
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=expr_values,
        )

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    async def set_fields(self, pk: str, sk: str, fields: Mapping[str, Any]) -> None:
        """Overwrite attributes with SET (upsert)."""
        if not fields:
            return
        names = {f"#f{i}": attr for i, attr in enumerate(fields)}
        expr_values = {
            f":f{i}": self._serialize_value(raw) for i, raw in enumerate(fields.values())
        }
        await self._call(
            "update_item",
            TableName=self._table_name,
            Key=self._key(pk, sk),
            UpdateExpression="SET " + ", ".join(f"#f{i} = :f{i}" for i in range(len(fields))),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=expr_values,
        )

    async def put(
        self,
        pk: str,
        sk: str,
        attributes: Mapping[str, Any],
        ttl: int | None = None,
    ) -> None:
        """Replace an item."""
        item: dict[str, Any] = {**self._key(pk, sk), **self._serialize_map(dict(attributes))}
        if ttl is not None:
            item[schema.ATTR_TTL] = {"N": str(ttl)}
        await self._call("put_item", TableName=self._table_name, Item=item)

    async def get(self, pk: str, sk: str) -> dict[str, Any] | None:
        """Get an item by key."""
        response = await self._call(
            "get_item",
            TableName=self._table_name,
            Key=self._key(pk, sk),
        )
        item = response.get("Item")
        if not item:
            return None
        return self._deserialize_item(item)

    async def delete(self, pk: str, sk: str) -> None:
        """Delete an item."""
        await self._call("delete_item", TableName=self._table_name, Key=self._key(pk, sk))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def query_prefix(
        self,
        pk: str,
        sk_prefix: str,
        limit: int | None = None,
        newest_first: bool = False,
        start_after: str | None = None,
    ) -> list[dict[str, Any]]:
        """Query a partition by sort key prefix, following pagination."""
        query_args: dict[str, Any] = {
            "TableName": self._table_name,
            "KeyConditionExpression": "PK = :pk AND begins_with(SK, :sk_prefix)",
            "ExpressionAttributeValues": {
                ":pk": {"S": pk},
                ":sk_prefix": {"S": sk_prefix},
            },
            "ScanIndexForward": not newest_first,
        }
        if limit is not None:
            query_args["Limit"] = limit
        if start_after is not None:
            query_args["ExclusiveStartKey"] = self._key(pk, start_after)

        return await self._query_all(query_args, limit)

    async def query_between(self, pk: str, sk_start: str, sk_end: str) -> list[dict[str, Any]]:
        """Query a partition by inclusive sort key range."""
        query_args: dict[str, Any] = {
            "TableName": self._table_name,
            "KeyConditionExpression": "PK = :pk AND SK BETWEEN :start AND :end",
            "ExpressionAttributeValues": {
                ":pk": {"S": pk},
                ":start": {"S": sk_start},
                ":end": {"S": sk_end},
            },
        }
        return await self._query_all(query_args)

    async def query_entity_type(self, entity_type: str) -> list[dict[str, Any]]:
        """Read every view counter of an entity type from GSI1."""
        query_args: dict[str, Any] = {
            "TableName": self._table_name,
            "IndexName": schema.GSI1_NAME,
            "KeyConditionExpression": "#type = :type",
            "ExpressionAttributeNames": {"#type": schema.ATTR_ENTITY_TYPE},
            "ExpressionAttributeValues": {":type": {"S": entity_type}},
            "ScanIndexForward": False,
        }
        return await self._query_all(query_args)

    async def _query_all(
        self, query_args: dict[str, Any], limit: int | None = None
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        while True:
            response = await self._call("query", **query_args)
            items.extend(self._deserialize_item(item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key or (limit is not None and len(items) >= limit):
                break
            query_args["ExclusiveStartKey"] = last_key
        return items[:limit] if limit is not None else items

    # -------------------------------------------------------------------------
    # Serialization helpers
    # -------------------------------------------------------------------------

    def _serialize_map(self, data: dict[str, Any]) -> dict[str, Any]:
        """Serialize a Python dict to DynamoDB map format."""
        return {key: self._serialize_value(value) for key, value in data.items()}

    def _serialize_value(self, value: Any) -> dict[str, Any]:
        """Serialize a single value to DynamoDB format."""
        if isinstance(value, str):
            return {"S": value}
        elif isinstance(value, bool):
            return {"BOOL": value}
        elif isinstance(value, (int, float)):
            return {"N": str(value)}
        elif isinstance(value, dict):
            return {"M": self._serialize_map(value)}
        elif isinstance(value, (set, frozenset)):
            return {"SS": sorted(str(v) for v in value)}
        elif isinstance(value, (list, tuple)):
            return {"L": [self._serialize_value(v) for v in value]}
        elif value is None:
            return {"NULL": True}
        return {"S": str(value)}

    def _deserialize_item(self, item: dict[str, Any]) -> dict[str, Any]:
        """Deserialize a DynamoDB item to a plain dict."""
        return {key: self._deserialize_value(value) for key, value in item.items()}

    def _deserialize_value(self, value: dict[str, Any]) -> Any:
        """Deserialize a single DynamoDB value."""
        if "S" in value:
            return value["S"]
        elif "N" in value:
            return self._deserialize_number(value["N"])
        elif "BOOL" in value:
            return value["BOOL"]
        elif "M" in value:
            return self._deserialize_item(value["M"])
        elif "L" in value:
            return [self._deserialize_value(v) for v in value["L"]]
        elif "SS" in value:
            return set(value["SS"])
        elif "NS" in value:
            return {self._deserialize_number(n) for n in value["NS"]}
        elif "NULL" in value:
            return None
        return None

    def _deserialize_number(self, num_str: str) -> int | float:
        return int(num_str) if "." not in num_str and "e" not in num_str.lower() else float(num_str)
