"""Lifetime per-entity aggregates."""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from . import schema
from .models import EntityRollup, EventType
from .store import StoreProtocol
from .windows import format_timestamp, utc_now

USER_ENTITY_TYPE = "user"


class EntityRollupManager:
    """
    Maintains ``totalEvents`` and ``eventsByType`` per entity, independent of time.

    Events *about* an entity roll up under ``ROLLUP``. Events *performed by*
    a user roll up under the user's ``ACTIVITY`` row, so a user who is also
    tracked as an entity keeps the two totals apart.
    """

    def __init__(
        self,
        store: StoreProtocol,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def record_entity_event(
        self,
        entity_type: str,
        entity_id: str,
        event_type: EventType | str,
    ) -> EntityRollup:
        """Count one event against the entity's rollup (single atomic update)."""
        return await self._record(entity_type, entity_id, schema.sk_rollup(), event_type)

    async def record_user_event(self, user_id: str, event_type: EventType | str) -> EntityRollup:
        """Count one event against the acting user's activity rollup."""
        return await self._record(USER_ENTITY_TYPE, user_id, schema.sk_activity(), event_type)

    async def get_rollup(self, entity_type: str, entity_id: str) -> EntityRollup:
        """Get the rollup (zeroes for an entity with no events)."""
        record = await self._store.get(schema.pk_entity(entity_type, entity_id), schema.sk_rollup())
        return self._from_record(entity_type, entity_id, record)

    async def get_user_activity(self, user_id: str) -> EntityRollup:
        """Get the events performed by a user."""
        record = await self._store.get(
            schema.pk_entity(USER_ENTITY_TYPE, user_id), schema.sk_activity()
        )
        return self._from_record(USER_ENTITY_TYPE, user_id, record)

    async def _record(
        self, entity_type: str, entity_id: str, sk: str, event_type: EventType | str
    ) -> EntityRollup:
        event_type = EventType.parse(event_type)
        record = await self._store.update_counters(
            schema.pk_entity(entity_type, entity_id),
            sk,
            counters={"totalEvents": 1},
            nested={"eventsByType": {event_type.value: 1}},
            set_fields={"lastUpdated": format_timestamp(self._clock())},
        )
        return self._from_record(entity_type, entity_id, record)

    def _from_record(
        self, entity_type: str, entity_id: str, record: dict[str, Any] | None
    ) -> EntityRollup:
        record = record or {}
        return EntityRollup(
            entity_type=entity_type,
            entity_id=entity_id,
            total_events=int(record.get("totalEvents", 0)),
            events_by_type={k: int(v) for k, v in record.get("eventsByType", {}).items()},
            last_updated=record.get("lastUpdated"),
        )
