"""Runtime configuration."""

import os
from dataclasses import dataclass

from . import schema

_TRUE = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Configuration for the analytics engine and its Lambda entry points."""

    table_name: str = schema.DEFAULT_TABLE_NAME
    cache_table_name: str = schema.DEFAULT_CACHE_TABLE_NAME
    region: str | None = None
    endpoint_url: str | None = None
    storage_timeout_seconds: float = 5.0
    engagement_ttl_days: int = 90
    realtime_ttl_hours: int = 24
    batch_concurrency: int = 10
    unique_lookback_days: int | None = None  # None = union every daily set
    user_rollups: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_environment(cls) -> "Settings":
        """Create settings from environment variables."""
        lookback = os.environ.get("UNIQUE_LOOKBACK_DAYS")
        return cls(
            table_name=os.environ.get("ANALYTICS_TABLE", schema.DEFAULT_TABLE_NAME),
            cache_table_name=os.environ.get("CACHE_TABLE", schema.DEFAULT_CACHE_TABLE_NAME),
            region=os.environ.get("AWS_REGION") or None,
            endpoint_url=os.environ.get("AWS_ENDPOINT_URL") or None,
            storage_timeout_seconds=float(os.environ.get("STORAGE_TIMEOUT_SECONDS", "5")),
            engagement_ttl_days=int(os.environ.get("ENGAGEMENT_TTL_DAYS", "90")),
            realtime_ttl_hours=int(os.environ.get("REALTIME_TTL_HOURS", "24")),
            batch_concurrency=int(os.environ.get("BATCH_CONCURRENCY", "10")),
            unique_lookback_days=int(lookback) if lookback else None,
            user_rollups=os.environ.get("USER_ROLLUPS", "true").strip().lower() in _TRUE,
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def engagement_ttl_seconds(self) -> int:
        return self.engagement_ttl_days * 86400

    @property
    def realtime_ttl_seconds(self) -> int:
        return self.realtime_ttl_hours * 3600
