"""
bellyfed-analytics: Event analytics aggregation backed by DynamoDB.

This library ingests user-engagement events and maintains:
- Lifetime view and engagement counters (atomic ADD, no lost updates)
- Distinct-viewer sets per entity per day
- Daily, hourly and real-time (24h) event buckets with device breakdowns
- Per-entity and per-user rollups
- Trending rankings by views
- A TTL-bounded cache for precomputed values

Example:
    from bellyfed_analytics import AnalyticsEngine, Settings

    async with AnalyticsEngine.from_settings(Settings.from_environment()) as engine:
        await engine.ingestor.track_view("restaurant", "r1", user_id="u1")
        report = await engine.query.get_analytics("restaurant", "r1", period="week")
        top = await engine.query.get_trending("restaurant", limit=5)
"""

from importlib.metadata import PackageNotFoundError, version

from .cache import CacheLayer
from .config import Settings
from .engine import AnalyticsEngine
from .exceptions import (
    AnalyticsError,
    InternalError,
    NotFoundError,
    TransientStorageError,
    ValidationError,
)
from .ingestor import BatchResult, EventIngestor
from .memory import InMemoryStore
from .models import (
    AnalyticsReport,
    BucketPoint,
    BucketSummary,
    CacheEntry,
    DeviceCategory,
    EngagementRecord,
    EntityRollup,
    EventType,
    Period,
    TimeSeriesPoint,
    TrackEngagementResult,
    TrackViewResult,
    TrendingEntity,
    ViewCounter,
)
from .query import QueryService
from .repository import Repository
from .rollups import EntityRollupManager
from .store import CounterStore, StoreProtocol
from .timebuckets import TimeBucketAggregator
from .trending import TrendingIndex
from .unique import UniqueSetTracker

try:
    __version__ = version("bellyfed-analytics")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Composition
    "AnalyticsEngine",
    "Settings",
    # Storage
    "StoreProtocol",
    "CounterStore",
    "Repository",
    "InMemoryStore",
    # Components
    "CacheLayer",
    "UniqueSetTracker",
    "TimeBucketAggregator",
    "EntityRollupManager",
    "TrendingIndex",
    "EventIngestor",
    "BatchResult",
    "QueryService",
    # Models
    "EventType",
    "DeviceCategory",
    "Period",
    "ViewCounter",
    "EngagementRecord",
    "TimeSeriesPoint",
    "BucketPoint",
    "BucketSummary",
    "EntityRollup",
    "TrendingEntity",
    "CacheEntry",
    "AnalyticsReport",
    "TrackViewResult",
    "TrackEngagementResult",
    # Exceptions
    "AnalyticsError",
    "ValidationError",
    "NotFoundError",
    "TransientStorageError",
    "InternalError",
]
