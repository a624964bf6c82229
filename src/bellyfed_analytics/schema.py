"""DynamoDB schema definitions and key builders."""

import math
from typing import Any

# Table and index names
DEFAULT_TABLE_NAME = "bellyfed-analytics"
DEFAULT_CACHE_TABLE_NAME = "bellyfed-analytics-cache"
GSI1_NAME = "GSI1"  # entityType -> view counters, for trending scans

# Attribute names
ATTR_PK = "PK"
ATTR_SK = "SK"
ATTR_TTL = "ttl"
ATTR_ENTITY_TYPE = "entityType"
ATTR_VIEW_COUNT = "viewCount"

# Sort keys and sort key prefixes
SK_VIEWS = "VIEWS"
SK_ROLLUP = "ROLLUP"
SK_ACTIVITY = "ACTIVITY"
SK_DATA = "DATA"
SK_VIEWERS = "VIEWERS#"
SK_ENGAGEMENT = "ENGAGEMENT#"
SK_ENGAGEMENT_COUNT = "ENGAGEMENT_COUNT#"
SK_DAILY = "daily_"
SK_HOURLY = "hourly_"
SK_REALTIME = "realtime_"

# Retention
ENGAGEMENT_TTL_SECONDS = 90 * 86400
REALTIME_TTL_SECONDS = 24 * 3600


def pk_entity(entity_type: str, entity_id: str) -> str:
    """Build partition key for an entity."""
    return f"{entity_type}#{entity_id}"


def parse_pk_entity(pk: str) -> tuple[str, str]:
    """Parse entity type and id from an entity partition key."""
    entity_type, sep, entity_id = pk.partition("#")
    if not sep or not entity_type or not entity_id:
        raise ValueError(f"Invalid entity PK: {pk}")
    return entity_type, entity_id


def sk_views() -> str:
    """Build sort key for the lifetime view counter."""
    return SK_VIEWS


def sk_rollup() -> str:
    """Build sort key for the entity rollup."""
    return SK_ROLLUP


def sk_activity() -> str:
    """Build sort key for a user's own activity rollup."""
    return SK_ACTIVITY


def sk_viewers(date_key: str) -> str:
    """Build sort key for one day's viewer set."""
    return f"{SK_VIEWERS}{date_key}"


def sk_engagement(engagement_id: str) -> str:
    """Build sort key for an engagement record."""
    return f"{SK_ENGAGEMENT}{engagement_id}"


def sk_engagement_count(engagement_type: str) -> str:
    """Build sort key for an engagement counter."""
    return f"{SK_ENGAGEMENT_COUNT}{engagement_type}"


def sk_daily(date_key: str) -> str:
    """Build sort key for a daily bucket (date_key: YYYY-MM-DD)."""
    return f"{SK_DAILY}{date_key}"


def sk_hourly(date_key: str, hour: int) -> str:
    """Build sort key for an hourly bucket."""
    return f"{SK_HOURLY}{date_key}_{hour:02d}"


def sk_realtime(date_key: str, minute_key: str) -> str:
    """Build sort key for a real-time minute bucket (minute_key: HH:MM)."""
    return f"{SK_REALTIME}{date_key}_{minute_key}"


def parse_cache_key(key: str) -> tuple[str, str]:
    """
    Split a cache key into partition and sort key.

    ``"trending#restaurant"`` maps to ``("trending", "restaurant")``; an
    unscoped key such as ``"homepage"`` maps to ``("homepage", "DATA")``.
    """
    pk, _, sk = key.partition("#")
    return pk, sk or SK_DATA


def get_table_definition(table_name: str) -> dict[str, Any]:
    """
    Get the DynamoDB table definition for CreateTable.

    Returns a dictionary suitable for boto3 create_table().
    """
    return {
        "TableName": table_name,
        "BillingMode": "PAY_PER_REQUEST",
        "AttributeDefinitions": [
            {"AttributeName": ATTR_PK, "AttributeType": "S"},
            {"AttributeName": ATTR_SK, "AttributeType": "S"},
            {"AttributeName": ATTR_ENTITY_TYPE, "AttributeType": "S"},
            {"AttributeName": ATTR_VIEW_COUNT, "AttributeType": "N"},
        ],
        "KeySchema": [
            {"AttributeName": ATTR_PK, "KeyType": "HASH"},
            {"AttributeName": ATTR_SK, "KeyType": "RANGE"},
        ],
        "GlobalSecondaryIndexes": [
            {
                # Sparse: only VIEWS rows carry entityType
                "IndexName": GSI1_NAME,
                "KeySchema": [
                    {"AttributeName": ATTR_ENTITY_TYPE, "KeyType": "HASH"},
                    {"AttributeName": ATTR_VIEW_COUNT, "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
    }


def calculate_ttl(now_ms: int, ttl_seconds: int) -> int:
    """
    Calculate TTL timestamp (epoch seconds).

    The write time is rounded up to the next whole second so the stored
    expiry never falls short of ``ttl_seconds``.
    """
    return math.ceil(now_ms / 1000) + ttl_seconds
