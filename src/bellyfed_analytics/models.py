"""Core models for bellyfed-analytics."""

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from .exceptions import ValidationError

# Identifiers become part of composite keys, so the key separator is forbidden
IDENTIFIER_PATTERN = re.compile(r"^[^#\s]{1,256}$")


def validate_identifier(value: Any, field_name: str) -> str:
    """
    Validate an identifier used inside a composite key.

    Args:
        value: The user-provided identifier
        field_name: Field name used in the error message

    Returns:
        The identifier, unchanged

    Raises:
        ValidationError: If the identifier is missing or malformed
    """
    if value is None or value == "":
        raise ValidationError.required(field_name)
    if not isinstance(value, str):
        raise ValidationError(field_name, value, f"{field_name} must be a string")
    if not IDENTIFIER_PATTERN.match(value):
        raise ValidationError(
            field_name,
            value,
            f"{field_name} must be 1-256 characters without '#' or whitespace",
        )
    return value


class EventType(str, Enum):
    """Closed set of event types tracked in aggregate maps."""

    VIEW = "view"
    LIKE = "like"
    COMMENT = "comment"
    SHARE = "share"
    SAVE = "save"
    CLICK = "click"

    @classmethod
    def parse(cls, value: Any, field_name: str = "eventType") -> "EventType":
        """Parse a wire value, raising ValidationError for unknown types."""
        if isinstance(value, cls):
            return value
        if value is None or value == "":
            raise ValidationError.required(field_name)
        try:
            return cls(str(value).lower())
        except ValueError:
            allowed = ", ".join(t.value for t in cls)
            raise ValidationError(
                field_name, value, f"{field_name} must be one of: {allowed}"
            ) from None

    @classmethod
    def engagement_types(cls) -> list["EventType"]:
        """Event types accepted by track-engagement (everything except views)."""
        return [t for t in cls if t is not cls.VIEW]


class DeviceCategory(str, Enum):
    """Closed set of client device categories."""

    MOBILE = "mobile"
    DESKTOP = "desktop"
    TABLET = "tablet"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "DeviceCategory":
        """Normalize a free-form device string; unknown values fold into OTHER."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.OTHER


class Period(str, Enum):
    """Query windows, each ending today (UTC) inclusive."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def days(self) -> int:
        """Number of calendar days covered by the window."""
        return _PERIOD_DAYS[self]

    @classmethod
    def parse(cls, value: Any) -> "Period":
        """Parse a wire value, raising ValidationError for unknown periods."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ValidationError("period", value, f"period must be one of: {allowed}") from None


_PERIOD_DAYS = {
    Period.DAY: 1,
    Period.WEEK: 7,
    Period.MONTH: 30,
    Period.YEAR: 365,
}


@dataclass
class ViewCounter:
    """
    Lifetime view counter for an entity.

    ``unique_viewers`` is eventually consistent: it is recomputed from the
    daily viewer sets after views are recorded.
    """

    entity_type: str
    entity_id: str
    view_count: int = 0
    unique_viewers: int = 0
    last_updated: str | None = None

    @classmethod
    def from_record(
        cls, entity_type: str, entity_id: str, record: dict[str, Any] | None
    ) -> "ViewCounter":
        """Build from a store record (None yields a zero counter)."""
        record = record or {}
        return cls(
            entity_type=entity_type,
            entity_id=entity_id,
            view_count=int(record.get("viewCount", 0)),
            unique_viewers=int(record.get("uniqueViewers", 0)),
            last_updated=record.get("lastUpdated"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "viewCount": self.view_count,
            "uniqueViewers": self.unique_viewers,
            "lastUpdated": self.last_updated,
        }


@dataclass
class EngagementRecord:
    """An immutable engagement event with 90-day retention."""

    engagement_id: str
    entity_type: str
    entity_id: str
    user_id: str
    engagement_type: str
    timestamp: str
    metadata: dict[str, Any] = field(default_factory=dict)
    expires_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "engagementId": self.engagement_id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "userId": self.user_id,
            "engagementType": self.engagement_type,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
            "expiresAt": self.expires_at,
        }


@dataclass
class TimeSeriesPoint:
    """One day of a gap-filled time series."""

    day: date
    total_events: int = 0
    unique_viewers: int = 0
    by_type: dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in EventType})
    by_device: dict[str, int] = field(
        default_factory=lambda: {device.value: 0 for device in DeviceCategory}
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "eventCount": self.total_events,
            "uniqueViewers": self.unique_viewers,
            "eventsByType": dict(self.by_type),
            "deviceTypes": dict(self.by_device),
        }


@dataclass
class BucketPoint:
    """One hourly or per-minute bucket of a gap-filled series."""

    bucket: str  # "YYYY-MM-DD_HH" or "YYYY-MM-DD_HH:MM"
    total_events: int = 0
    by_type: dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in EventType})

    def to_dict(self) -> dict[str, Any]:
        return {
            "bucket": self.bucket,
            "eventCount": self.total_events,
            "eventsByType": dict(self.by_type),
        }


@dataclass
class BucketSummary:
    """Totals over an inclusive date range of daily buckets."""

    start: date
    end: date
    total_events: int
    events_by_type: dict[str, int]
    device_types: dict[str, int]
    unique_users: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "totalEvents": self.total_events,
            "eventsByType": dict(self.events_by_type),
            "deviceTypes": dict(self.device_types),
            "uniqueUsers": self.unique_users,
        }


@dataclass
class EntityRollup:
    """Lifetime aggregate of all events for an entity."""

    entity_type: str
    entity_id: str
    total_events: int = 0
    events_by_type: dict[str, int] = field(default_factory=dict)
    last_updated: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalEvents": self.total_events,
            "eventsByType": dict(self.events_by_type),
            "lastUpdated": self.last_updated,
        }


@dataclass
class TrendingEntity:
    """One row of a trending ranking."""

    entity_id: str
    view_count: int
    unique_viewers: int
    last_updated: str | None

    @property
    def sort_key(self) -> tuple[int, int, str]:
        """Descending sort key: views, then unique viewers, then recency."""
        return (self.view_count, self.unique_viewers, self.last_updated or "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "entityId": self.entity_id,
            "viewCount": self.view_count,
            "uniqueViewers": self.unique_viewers,
            "lastUpdated": self.last_updated,
        }


@dataclass
class CacheEntry:
    """A cached value with optional absolute expiry (epoch seconds)."""

    key: str
    value: Any
    last_updated: str | None = None
    expires_at: int | None = None

    def is_expired(self, now_s: float) -> bool:
        """True once the expiry has passed, whether or not the row was purged."""
        return self.expires_at is not None and self.expires_at <= now_s

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "lastUpdated": self.last_updated,
        }


@dataclass
class TrackViewResult:
    """Acknowledgement for a tracked view."""

    view_count: int
    degraded: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"viewCount": self.view_count}


@dataclass
class TrackEngagementResult:
    """Acknowledgement for a tracked engagement."""

    engagement_id: str
    count: int
    degraded: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"engagementId": self.engagement_id, "count": self.count}


@dataclass
class AnalyticsReport:
    """Views, engagements, rollup and (optionally) a daily series for one entity."""

    entity_type: str
    entity_id: str
    views: ViewCounter
    engagements: dict[str, int]
    rollup: EntityRollup
    time_series: list[TimeSeriesPoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "viewData": self.views.to_dict(),
            "engagementData": dict(self.engagements),
            "timeSeriesData": [point.to_dict() for point in self.time_series],
            "rollup": self.rollup.to_dict(),
        }
