"""Daily, hourly and real-time event buckets."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import Any

from . import schema
from .exceptions import ValidationError
from .models import (
    BucketPoint,
    BucketSummary,
    DeviceCategory,
    EventType,
    Period,
    TimeSeriesPoint,
)
from .store import StoreProtocol
from .windows import (
    BucketKeys,
    format_timestamp,
    iter_dates,
    iter_minutes,
    resolve_period,
    utc_now,
)

# Bucket attributes
TOTAL_EVENTS = "totalEvents"
EVENTS_BY_TYPE = "eventsByType"
DEVICE_TYPES = "deviceTypes"
UNIQUE_USERS = "uniqueUsers"

MAX_REALTIME_MINUTES = 24 * 60


def _counts(raw: Any, keys: list[str]) -> dict[str, int]:
    """Zero-filled counts over a closed key set, ignoring unknown stored keys."""
    raw = raw or {}
    return {key: int(raw.get(key, 0)) for key in keys}


_EVENT_KEYS = [t.value for t in EventType]
_DEVICE_KEYS = [d.value for d in DeviceCategory]


class TimeBucketAggregator:
    """
    Maintains time-bucketed event counts for an entity.

    Each event increments three independent buckets:

    - ``daily_<YYYY-MM-DD>``: totals, per-type counts, per-device counts and
      the set of distinct users
    - ``hourly_<YYYY-MM-DD>_<HH>``: totals and per-type counts
    - ``realtime_<YYYY-MM-DD>_<HH:MM>``: totals and per-type counts, expiring
      after ``realtime_ttl_seconds``

    Series readers always return one point per bucket in the window; buckets
    with no stored row are zero-filled.
    """

    def __init__(
        self,
        store: StoreProtocol,
        clock: Callable[[], datetime] = utc_now,
        realtime_ttl_seconds: int = schema.REALTIME_TTL_SECONDS,
    ) -> None:
        self._store = store
        self._clock = clock
        self.realtime_ttl_seconds = realtime_ttl_seconds

    async def record_event(
        self,
        entity_type: str,
        entity_id: str,
        event_type: EventType | str,
        timestamp: datetime,
        device_type: DeviceCategory | str | None = None,
        user_id: str | None = None,
    ) -> None:
        """
        Count one event in its daily, hourly and real-time buckets.

        Args:
            entity_type: Entity type (e.g., "restaurant")
            entity_id: Entity identifier
            event_type: Event type
            timestamp: Event time (bucketed in UTC)
            device_type: Client device; counted on the daily bucket only
            user_id: Acting user; added to the daily bucket's user set
        """
        event_type = EventType.parse(event_type)
        pk = schema.pk_entity(entity_type, entity_id)
        keys = BucketKeys.from_datetime(timestamp)
        now = self._clock()
        last_updated = format_timestamp(now)
        by_type = {event_type.value: 1}

        daily_nested: dict[str, dict[str, int]] = {EVENTS_BY_TYPE: by_type}
        if device_type:
            device = (
                device_type
                if isinstance(device_type, DeviceCategory)
                else DeviceCategory.parse(device_type)
            )
            daily_nested[DEVICE_TYPES] = {device.value: 1}

        writes: list[Awaitable[Any]] = [
            self._store.update_counters(
                pk,
                schema.sk_daily(keys.date_key),
                counters={TOTAL_EVENTS: 1},
                nested=daily_nested,
                set_fields={"lastUpdated": last_updated},
            ),
            self._store.update_counters(
                pk,
                schema.sk_hourly(keys.date_key, keys.hour),
                counters={TOTAL_EVENTS: 1},
                nested={EVENTS_BY_TYPE: by_type},
                set_fields={"lastUpdated": last_updated},
            ),
            self._store.update_counters(
                pk,
                schema.sk_realtime(keys.date_key, keys.minute_key),
                counters={TOTAL_EVENTS: 1},
                nested={EVENTS_BY_TYPE: by_type},
                set_fields={"lastUpdated": last_updated},
                ttl=schema.calculate_ttl(int(now.timestamp() * 1000), self.realtime_ttl_seconds),
            ),
        ]
        if user_id:
            writes.append(
                self._store.add_to_set(
                    pk, schema.sk_daily(keys.date_key), UNIQUE_USERS, {user_id}
                )
            )
        await asyncio.gather(*writes)

    # -------------------------------------------------------------------------
    # Readers
    # -------------------------------------------------------------------------

    async def get_time_series(
        self,
        entity_type: str,
        entity_id: str,
        period: Period | str,
    ) -> list[TimeSeriesPoint]:
        """
        Daily series over a period ending today, one point per calendar day.

        Raises:
            ValidationError: If the period is unknown
        """
        period = period if isinstance(period, Period) else Period.parse(period)
        start, end = resolve_period(period, self._clock().date())
        rows = await self._daily_rows(entity_type, entity_id, start, end)

        series = []
        for day in iter_dates(start, end):
            point = TimeSeriesPoint(day=day)
            row = rows.get(day.isoformat())
            if row is not None:
                point.total_events = int(row.get(TOTAL_EVENTS, 0))
                point.unique_viewers = len(row.get(UNIQUE_USERS) or ())
                point.by_type = _counts(row.get(EVENTS_BY_TYPE), _EVENT_KEYS)
                point.by_device = _counts(row.get(DEVICE_TYPES), _DEVICE_KEYS)
            series.append(point)
        return series

    async def get_hourly_series(
        self,
        entity_type: str,
        entity_id: str,
        day: date,
    ) -> list[BucketPoint]:
        """The 24 hourly buckets of one day."""
        pk = schema.pk_entity(entity_type, entity_id)
        date_key = day.isoformat()
        rows = await self._store.query_prefix(pk, f"{schema.SK_HOURLY}{date_key}_")
        by_sk = {row[schema.ATTR_SK]: row for row in rows}

        series = []
        for hour in range(24):
            point = BucketPoint(bucket=f"{date_key}_{hour:02d}")
            row = by_sk.get(schema.sk_hourly(date_key, hour))
            if row is not None:
                point.total_events = int(row.get(TOTAL_EVENTS, 0))
                point.by_type = _counts(row.get(EVENTS_BY_TYPE), _EVENT_KEYS)
            series.append(point)
        return series

    async def get_realtime_series(
        self,
        entity_type: str,
        entity_id: str,
        minutes: int = 60,
    ) -> list[BucketPoint]:
        """
        Per-minute buckets for the last ``minutes`` minutes, oldest first.

        Rows past their expiry are treated as empty even if not yet purged.

        Raises:
            ValidationError: If minutes is outside [1, 1440]
        """
        if isinstance(minutes, bool) or not isinstance(minutes, int):
            raise ValidationError("minutes", minutes, "minutes must be an integer")
        if not 1 <= minutes <= MAX_REALTIME_MINUTES:
            raise ValidationError(
                "minutes", minutes, f"minutes must be between 1 and {MAX_REALTIME_MINUTES}"
            )

        now = self._clock()
        boundaries = [BucketKeys.from_datetime(dt) for dt in iter_minutes(now, minutes)]
        pk = schema.pk_entity(entity_type, entity_id)
        rows = await self._store.query_between(
            pk,
            schema.sk_realtime(boundaries[0].date_key, boundaries[0].minute_key),
            schema.sk_realtime(boundaries[-1].date_key, boundaries[-1].minute_key),
        )
        now_s = now.timestamp()
        by_sk = {
            row[schema.ATTR_SK]: row
            for row in rows
            if row.get(schema.ATTR_TTL) is None or row[schema.ATTR_TTL] > now_s
        }

        series = []
        for keys in boundaries:
            point = BucketPoint(bucket=f"{keys.date_key}_{keys.minute_key}")
            row = by_sk.get(schema.sk_realtime(keys.date_key, keys.minute_key))
            if row is not None:
                point.total_events = int(row.get(TOTAL_EVENTS, 0))
                point.by_type = _counts(row.get(EVENTS_BY_TYPE), _EVENT_KEYS)
            series.append(point)
        return series

    async def summarize(
        self,
        entity_type: str,
        entity_id: str,
        start: date,
        end: date,
    ) -> BucketSummary:
        """Totals of the daily buckets in ``[start, end]``."""
        if start > end:
            raise ValidationError("start", start.isoformat(), "start must not be after end")

        rows = await self._daily_rows(entity_type, entity_id, start, end)
        events_by_type = dict.fromkeys(_EVENT_KEYS, 0)
        device_types = dict.fromkeys(_DEVICE_KEYS, 0)
        users: set[str] = set()
        total = 0
        for row in rows.values():
            total += int(row.get(TOTAL_EVENTS, 0))
            for key, count in _counts(row.get(EVENTS_BY_TYPE), _EVENT_KEYS).items():
                events_by_type[key] += count
            for key, count in _counts(row.get(DEVICE_TYPES), _DEVICE_KEYS).items():
                device_types[key] += count
            users |= set(row.get(UNIQUE_USERS, set()))

        return BucketSummary(
            start=start,
            end=end,
            total_events=total,
            events_by_type=events_by_type,
            device_types=device_types,
            unique_users=len(users),
        )

    async def _daily_rows(
        self, entity_type: str, entity_id: str, start: date, end: date
    ) -> dict[str, dict[str, Any]]:
        """Daily bucket rows in range, keyed by date string."""
        rows = await self._store.query_between(
            schema.pk_entity(entity_type, entity_id),
            schema.sk_daily(start.isoformat()),
            schema.sk_daily(end.isoformat()),
        )
        prefix_len = len(schema.SK_DAILY)
        return {row[schema.ATTR_SK][prefix_len:]: row for row in rows}
