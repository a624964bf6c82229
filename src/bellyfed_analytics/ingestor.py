"""Event ingestion: validation and fan-out to the aggregates."""

import asyncio
import json
import logging
import time as time_module
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ulid import ULID

from . import schema
from .exceptions import ValidationError
from .models import (
    DeviceCategory,
    EngagementRecord,
    EventType,
    TrackEngagementResult,
    TrackViewResult,
    validate_identifier,
)
from .rollups import EntityRollupManager
from .store import StoreProtocol
from .timebuckets import TimeBucketAggregator
from .unique import UniqueSetTracker
from .windows import BucketKeys, format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"


@dataclass
class BatchResult:
    """Outcome of processing a batch of channel records.

    ``failed`` ids should be redelivered. ``rejected`` ids failed validation
    and would fail again, so they are only logged.
    """

    processed: int = 0
    failed: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)

    def to_batch_response(self) -> dict[str, Any]:
        """Partial-failure response for the delivery channel."""
        return {"batchItemFailures": [{"itemIdentifier": item_id} for item_id in self.failed]}


def _optional_identifier(value: Any, field_name: str) -> str | None:
    if value is None or value == "":
        return None
    return validate_identifier(value, field_name)


def _device(value: Any) -> DeviceCategory | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError("deviceType", value, "deviceType must be a string")
    return DeviceCategory.parse(value)


class EventIngestor:
    """
    Validates inbound events and fans them out to the aggregation components.

    Per event the primary counter and every secondary aggregate are written
    concurrently and joined before acknowledging. A failed primary write
    fails the event (the caller depends on the returned count); failed
    secondary writes are logged and reported in ``degraded``. Writes that
    already succeeded are never rolled back.

    Increments are not idempotent: a redelivered event is counted again.

    Args:
        store: Counter store
        unique: Distinct-viewer tracker
        buckets: Time bucket aggregator
        rollups: Entity rollup manager
        clock: Time source
        engagement_ttl_seconds: Retention of engagement records
        user_rollups: Also roll events up against the acting user
        batch_concurrency: Records processed concurrently by ingest_batch()
    """

    def __init__(
        self,
        store: StoreProtocol,
        unique: UniqueSetTracker,
        buckets: TimeBucketAggregator,
        rollups: EntityRollupManager,
        clock: Callable[[], datetime] = utc_now,
        engagement_ttl_seconds: int = schema.ENGAGEMENT_TTL_SECONDS,
        user_rollups: bool = True,
        batch_concurrency: int = 10,
    ) -> None:
        self._store = store
        self._unique = unique
        self._buckets = buckets
        self._rollups = rollups
        self._clock = clock
        self.engagement_ttl_seconds = engagement_ttl_seconds
        self.user_rollups = user_rollups
        self.batch_concurrency = batch_concurrency

    # -------------------------------------------------------------------------
    # Single events
    # -------------------------------------------------------------------------

    async def track_view(
        self,
        entity_type: Any,
        entity_id: Any,
        user_id: Any = None,
        device_type: Any = None,
        timestamp: Any = None,
        recompute_unique: bool = True,
    ) -> TrackViewResult:
        """
        Record a view.

        Args:
            entity_type: Entity type (required)
            entity_id: Entity identifier (required)
            user_id: Viewer; enables distinct-viewer tracking
            device_type: Client device category
            timestamp: Event time (ISO-8601 or epoch ms); defaults to now
            recompute_unique: Refresh ``uniqueViewers`` after the writes

        Returns:
            TrackViewResult with the post-increment view count

        Raises:
            ValidationError: If input is invalid (nothing is written)
            TransientStorageError: If the view counter could not be updated
        """
        entity_type = validate_identifier(entity_type, "entityType")
        entity_id = validate_identifier(entity_id, "entityId")
        user_id = _optional_identifier(user_id, "userId")
        device = _device(device_type)
        now = self._clock()
        event_time = parse_timestamp(timestamp) if timestamp is not None else now
        pk = schema.pk_entity(entity_type, entity_id)

        primary = self._store.update_counters(
            pk,
            schema.sk_views(),
            counters={schema.ATTR_VIEW_COUNT: 1},
            set_fields={
                "lastUpdated": format_timestamp(now),
                schema.ATTR_ENTITY_TYPE: entity_type,
            },
            if_absent={"uniqueViewers": 0},
        )
        secondaries: dict[str, Awaitable[Any]] = {
            "rollup": self._rollups.record_entity_event(entity_type, entity_id, EventType.VIEW),
            "time_buckets": self._buckets.record_event(
                entity_type, entity_id, EventType.VIEW, event_time, device, user_id
            ),
        }
        if user_id:
            secondaries["viewers"] = self._unique.record_viewer(
                entity_type, entity_id, user_id, BucketKeys.from_datetime(event_time).date_key
            )
            if self.user_rollups:
                secondaries["user_rollup"] = self._rollups.record_user_event(
                    user_id, EventType.VIEW
                )

        record, degraded = await self._fan_out(
            primary, secondaries, entity_type=entity_type, entity_id=entity_id, event_type="view"
        )

        if recompute_unique and user_id and "viewers" not in degraded:
            if not await self._recompute(entity_type, entity_id):
                degraded.append("unique_viewers")

        return TrackViewResult(view_count=int(record[schema.ATTR_VIEW_COUNT]), degraded=degraded)

    async def track_engagement(
        self,
        entity_type: Any,
        entity_id: Any,
        engagement_type: Any,
        user_id: Any = None,
        metadata: Any = None,
        device_type: Any = None,
        timestamp: Any = None,
    ) -> TrackEngagementResult:
        """
        Record an engagement (like, comment, share, save, click).

        The engagement counter is the primary write. The engagement record
        (kept for ``engagement_ttl_seconds``), time buckets and rollups are
        secondary.

        Returns:
            TrackEngagementResult with the new engagement id and count

        Raises:
            ValidationError: If input is invalid (nothing is written)
            TransientStorageError: If the engagement counter could not be updated
        """
        entity_type = validate_identifier(entity_type, "entityType")
        entity_id = validate_identifier(entity_id, "entityId")
        event_type = EventType.parse(engagement_type, "engagementType")
        if event_type is EventType.VIEW:
            raise ValidationError(
                "engagementType", engagement_type, "views are tracked with track-view"
            )
        user_id = _optional_identifier(user_id, "userId")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata", metadata, "metadata must be an object")
        device = _device(device_type)
        now = self._clock()
        event_time = parse_timestamp(timestamp) if timestamp is not None else now
        pk = schema.pk_entity(entity_type, entity_id)
        last_updated = format_timestamp(now)

        engagement = EngagementRecord(
            engagement_id=str(ULID.from_datetime(now)),
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id or ANONYMOUS_USER,
            engagement_type=event_type.value,
            timestamp=format_timestamp(event_time),
            metadata=metadata or {},
            expires_at=schema.calculate_ttl(
                int(now.timestamp() * 1000), self.engagement_ttl_seconds
            ),
        )

        primary = self._store.update_counters(
            pk,
            schema.sk_engagement_count(event_type.value),
            counters={"count": 1},
            set_fields={"lastUpdated": last_updated},
        )
        secondaries: dict[str, Awaitable[Any]] = {
            "engagement_record": self._store.put(
                pk,
                schema.sk_engagement(engagement.engagement_id),
                {
                    "engagementId": engagement.engagement_id,
                    "userId": engagement.user_id,
                    "engagementType": engagement.engagement_type,
                    "metadata": engagement.metadata,
                    "timestamp": engagement.timestamp,
                },
                ttl=engagement.expires_at,
            ),
            "rollup": self._rollups.record_entity_event(entity_type, entity_id, event_type),
            "time_buckets": self._buckets.record_event(
                entity_type, entity_id, event_type, event_time, device, user_id
            ),
        }
        if user_id and self.user_rollups:
            secondaries["user_rollup"] = self._rollups.record_user_event(user_id, event_type)

        record, degraded = await self._fan_out(
            primary,
            secondaries,
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=event_type.value,
        )
        return TrackEngagementResult(
            engagement_id=engagement.engagement_id,
            count=int(record["count"]),
            degraded=degraded,
        )

    async def track_event(
        self, event: dict[str, Any], recompute_unique: bool = True
    ) -> TrackViewResult | TrackEngagementResult:
        """
        Dispatch a wire event body to track_view or track_engagement.

        ``eventType`` is ``"view"``, an engagement type, or ``"engagement"``
        together with ``engagementType``.
        """
        if not isinstance(event, dict):
            raise ValidationError("event", event, "event must be an object")

        raw_type = event.get("eventType")
        if raw_type == "engagement" or (raw_type is None and event.get("engagementType")):
            engagement_type = event.get("engagementType")
        else:
            if EventType.parse(raw_type) is EventType.VIEW:
                return await self.track_view(
                    event.get("entityType"),
                    event.get("entityId"),
                    user_id=event.get("userId"),
                    device_type=event.get("deviceType"),
                    timestamp=event.get("timestamp"),
                    recompute_unique=recompute_unique,
                )
            engagement_type = raw_type

        return await self.track_engagement(
            event.get("entityType"),
            event.get("entityId"),
            engagement_type,
            user_id=event.get("userId"),
            metadata=event.get("metadata"),
            device_type=event.get("deviceType"),
            timestamp=event.get("timestamp"),
        )

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    async def ingest_batch(self, records: Iterable[dict[str, Any]]) -> BatchResult:
        """
        Process channel records (``{"messageId": ..., "body": ...}``).

        Records run concurrently up to ``batch_concurrency``; each succeeds or
        fails on its own. Unique viewer counts are recomputed once per
        distinct entity after all records finish.

        Returns:
            BatchResult with ids to redeliver (``failed``) and ids dropped
            for invalid input (``rejected``)
        """
        start_time = time_module.perf_counter()
        records = list(records)
        result = BatchResult()
        viewed: set[tuple[str, str]] = set()
        semaphore = asyncio.Semaphore(self.batch_concurrency)

        logger.info("Batch processing started", extra={"record_count": len(records)})

        async def process(idx: int, record: dict[str, Any]) -> None:
            message_id = str(record.get("messageId") or idx)
            async with semaphore:
                try:
                    event = self._decode_body(record.get("body"))
                    outcome = await self.track_event(event, recompute_unique=False)
                except ValidationError as e:
                    logger.warning(
                        "Rejected invalid event",
                        extra={"message_id": message_id, "field": e.field, "reason": e.reason},
                    )
                    result.rejected.append(message_id)
                    return
                except Exception as e:
                    logger.error(
                        "Error processing record",
                        exc_info=True,
                        extra={"message_id": message_id, "error_type": type(e).__name__},
                    )
                    result.failed.append(message_id)
                    return

            result.processed += 1
            if isinstance(outcome, TrackViewResult) and event.get("userId"):
                if "viewers" not in outcome.degraded:
                    viewed.add((event["entityType"], event["entityId"]))

        await asyncio.gather(*(process(idx, record) for idx, record in enumerate(records)))

        for entity_type, entity_id in sorted(viewed):
            await self._recompute(entity_type, entity_id)

        logger.info(
            "Batch processing completed",
            extra={
                "processed_count": result.processed,
                "failed_count": len(result.failed),
                "rejected_count": len(result.rejected),
                "entities_recomputed": len(viewed),
                "processing_time_ms": round((time_module.perf_counter() - start_time) * 1000, 2),
            },
        )
        return result

    def _decode_body(self, body: Any) -> dict[str, Any]:
        if isinstance(body, dict):
            return body
        if not isinstance(body, str) or not body:
            raise ValidationError.required("body")
        try:
            event = json.loads(body)
        except json.JSONDecodeError:
            raise ValidationError("body", body, "body must be valid JSON") from None
        if not isinstance(event, dict):
            raise ValidationError("body", body, "body must be a JSON object")
        return event

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _fan_out(
        self,
        primary: Awaitable[dict[str, Any]],
        secondaries: dict[str, Awaitable[Any]],
        **context: Any,
    ) -> tuple[dict[str, Any], list[str]]:
        """Run the primary and secondary writes concurrently and join them."""
        results = await asyncio.gather(primary, *secondaries.values(), return_exceptions=True)
        primary_result, secondary_results = results[0], results[1:]

        degraded = []
        for name, outcome in zip(secondaries, secondary_results, strict=True):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Secondary aggregate write failed",
                    extra={
                        "write": name,
                        "error": str(outcome),
                        "error_type": type(outcome).__name__,
                        **context,
                    },
                )
                degraded.append(name)

        if isinstance(primary_result, BaseException):
            logger.error(
                "Primary counter write failed",
                extra={
                    "error": str(primary_result),
                    "error_type": type(primary_result).__name__,
                    "committed": [name for name in secondaries if name not in degraded],
                    **context,
                },
            )
            raise primary_result

        return primary_result, degraded

    async def _recompute(self, entity_type: str, entity_id: str) -> bool:
        """Best-effort unique viewer refresh; False when it failed."""
        try:
            await self._unique.recompute_unique_count(entity_type, entity_id)
        except Exception as e:
            logger.warning(
                "Unique viewer recompute failed",
                extra={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return False
        return True
