"""Composition root wiring the analytics components."""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from .cache import CacheLayer
from .config import Settings
from .ingestor import EventIngestor
from .memory import InMemoryStore
from .query import QueryService
from .repository import Repository
from .rollups import EntityRollupManager
from .store import StoreProtocol
from .timebuckets import TimeBucketAggregator
from .trending import TrendingIndex
from .unique import UniqueSetTracker
from .windows import utc_now


class AnalyticsEngine:
    """
    Wires every component around injected stores and owns their lifecycle.

    Components never create or close connections themselves; the engine
    closes its stores on exit.

    Example:
        async with AnalyticsEngine.from_settings(Settings.from_environment()) as engine:
            await engine.ingestor.track_view("restaurant", "r1", user_id="u1")
            report = await engine.query.get_analytics("restaurant", "r1", "week")

    Args:
        store: Counter store
        cache_store: Store for cache entries (defaults to ``store``)
        settings: Tunables (defaults to Settings())
        clock: Time source shared by all components
    """

    def __init__(
        self,
        store: StoreProtocol,
        cache_store: StoreProtocol | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        self.cache_store = cache_store or store

        self.cache = CacheLayer(self.cache_store, clock=clock)
        self.unique = UniqueSetTracker(
            store, clock=clock, lookback_days=self.settings.unique_lookback_days
        )
        self.buckets = TimeBucketAggregator(
            store, clock=clock, realtime_ttl_seconds=self.settings.realtime_ttl_seconds
        )
        self.rollups = EntityRollupManager(store, clock=clock)
        self.trending = TrendingIndex(store, clock=clock)
        self.ingestor = EventIngestor(
            store,
            self.unique,
            self.buckets,
            self.rollups,
            clock=clock,
            engagement_ttl_seconds=self.settings.engagement_ttl_seconds,
            user_rollups=self.settings.user_rollups,
            batch_concurrency=self.settings.batch_concurrency,
        )
        self.query = QueryService(
            store, self.rollups, self.buckets, self.trending, self.cache, clock=clock
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalyticsEngine":
        """Build an engine backed by DynamoDB tables."""

        def repository(table_name: str) -> Repository:
            return Repository(
                table_name=table_name,
                region=settings.region,
                endpoint_url=settings.endpoint_url,
                timeout_seconds=settings.storage_timeout_seconds,
            )

        return cls(
            repository(settings.table_name),
            cache_store=repository(settings.cache_table_name),
            settings=settings,
        )

    @classmethod
    def in_memory(
        cls,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "AnalyticsEngine":
        """Build an engine backed by process-local stores."""
        return cls(
            InMemoryStore("analytics"),
            cache_store=InMemoryStore("cache"),
            settings=settings,
            clock=clock,
        )

    async def close(self) -> None:
        """Close every store."""
        await self.store.close()
        if self.cache_store is not self.store:
            await self.cache_store.close()

    async def __aenter__(self) -> "AnalyticsEngine":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
