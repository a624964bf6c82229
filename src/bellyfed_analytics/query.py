"""Read-only analytics queries."""

import asyncio
from collections.abc import Callable
from datetime import datetime

from . import schema
from .cache import CacheLayer
from .models import (
    AnalyticsReport,
    CacheEntry,
    EngagementRecord,
    Period,
    TrendingEntity,
    ViewCounter,
    validate_identifier,
)
from .rollups import EntityRollupManager
from .store import StoreProtocol
from .timebuckets import TimeBucketAggregator
from .trending import DEFAULT_LIMIT, TrendingIndex, validate_limit
from .windows import utc_now


class QueryService:
    """
    Read facade over the aggregates. Never writes.

    Args:
        store: Counter store holding view and engagement counters
        rollups: Entity rollup manager
        buckets: Time bucket aggregator
        trending: Trending index
        cache: Cache layer
        clock: Time source used to hide expired engagement records
    """

    def __init__(
        self,
        store: StoreProtocol,
        rollups: EntityRollupManager,
        buckets: TimeBucketAggregator,
        trending: TrendingIndex,
        cache: CacheLayer,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._rollups = rollups
        self._buckets = buckets
        self._trending = trending
        self._cache = cache
        self._clock = clock

    async def get_analytics(
        self,
        entity_type: str,
        entity_id: str,
        period: Period | str | None = None,
    ) -> AnalyticsReport:
        """
        Views, engagement counts and rollup for an entity, plus a gap-filled
        daily series when ``period`` is given.

        Unknown entities yield zero counters rather than NotFound.
        """
        entity_type = validate_identifier(entity_type, "entityType")
        entity_id = validate_identifier(entity_id, "entityId")
        if period is not None and not isinstance(period, Period):
            period = Period.parse(period)
        pk = schema.pk_entity(entity_type, entity_id)

        views, engagement_rows, rollup = await asyncio.gather(
            self._store.get(pk, schema.sk_views()),
            self._store.query_prefix(pk, schema.SK_ENGAGEMENT_COUNT),
            self._rollups.get_rollup(entity_type, entity_id),
        )
        time_series = []
        if period is not None:
            time_series = await self._buckets.get_time_series(entity_type, entity_id, period)

        prefix_len = len(schema.SK_ENGAGEMENT_COUNT)
        return AnalyticsReport(
            entity_type=entity_type,
            entity_id=entity_id,
            views=ViewCounter.from_record(entity_type, entity_id, views),
            engagements={
                row[schema.ATTR_SK][prefix_len:]: int(row.get("count", 0))
                for row in engagement_rows
            },
            rollup=rollup,
            time_series=time_series,
        )

    async def get_trending(
        self,
        entity_type: str,
        limit: int = DEFAULT_LIMIT,
        period: Period | str | None = None,
    ) -> list[TrendingEntity]:
        """Top entities of a type by views."""
        entity_type = validate_identifier(entity_type, "entityType")
        return await self._trending.top_k(entity_type, limit, period)

    async def get_cached(self, key: str) -> CacheEntry | None:
        """Cached entry, or None when absent or expired."""
        return await self._cache.get(key)

    async def get_engagements(
        self,
        entity_type: str,
        entity_id: str,
        limit: int = 50,
        start_after: str | None = None,
    ) -> list[EngagementRecord]:
        """
        Engagement records for an entity, most recent first.

        Engagement ids are ULIDs, so sort key order is time order. Pass the
        last returned id as ``start_after`` to page further back.
        """
        entity_type = validate_identifier(entity_type, "entityType")
        entity_id = validate_identifier(entity_id, "entityId")
        limit = validate_limit(limit)
        pk = schema.pk_entity(entity_type, entity_id)

        rows = await self._store.query_prefix(
            pk,
            schema.SK_ENGAGEMENT,
            limit=limit,
            newest_first=True,
            start_after=schema.sk_engagement(start_after) if start_after else None,
        )
        now_s = self._clock().timestamp()
        prefix_len = len(schema.SK_ENGAGEMENT)
        records = []
        for row in rows:
            expires_at = row.get(schema.ATTR_TTL)
            if expires_at is not None and expires_at <= now_s:
                continue
            records.append(
                EngagementRecord(
                    engagement_id=row[schema.ATTR_SK][prefix_len:],
                    entity_type=entity_type,
                    entity_id=entity_id,
                    user_id=row.get("userId", "anonymous"),
                    engagement_type=row.get("engagementType", ""),
                    timestamp=row.get("timestamp", ""),
                    metadata=row.get("metadata") or {},
                    expires_at=expires_at,
                )
            )
        return records
