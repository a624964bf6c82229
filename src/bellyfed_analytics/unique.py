"""Distinct-viewer tracking across daily viewer sets."""

import logging
from collections.abc import Callable
from datetime import date, datetime

from . import schema
from .store import StoreProtocol
from .windows import format_timestamp, utc_now

logger = logging.getLogger(__name__)

VIEWERS_FIELD = "viewers"


def _date_key(day: date | str) -> str:
    return day if isinstance(day, str) else day.isoformat()


class UniqueSetTracker:
    """
    Maintains one viewer set per entity per day and derives ``uniqueViewers``.

    recordViewer is a set union, so adding the same viewer twice is a no-op.
    recompute_unique_count reads every daily set of the entity and is
    O(distinct viewers); callers run it once after a request or batch, never
    per event. The result is eventually consistent with the view counter.

    Args:
        store: Counter store
        clock: Time source for ``lastUpdated``
        lookback_days: Only union the most recent N daily sets (None = all)
    """

    def __init__(
        self,
        store: StoreProtocol,
        clock: Callable[[], datetime] = utc_now,
        lookback_days: int | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self.lookback_days = lookback_days

    async def record_viewer(
        self,
        entity_type: str,
        entity_id: str,
        viewer_id: str,
        day: date | str,
    ) -> None:
        """Add a viewer to the entity's set for ``day`` (idempotent)."""
        await self._store.add_to_set(
            schema.pk_entity(entity_type, entity_id),
            schema.sk_viewers(_date_key(day)),
            VIEWERS_FIELD,
            {viewer_id},
            set_fields={"lastUpdated": format_timestamp(self._clock())},
        )

    async def viewers_on(self, entity_type: str, entity_id: str, day: date | str) -> set[str]:
        """Distinct viewers recorded on one day."""
        record = await self._store.get(
            schema.pk_entity(entity_type, entity_id),
            schema.sk_viewers(_date_key(day)),
        )
        if record is None:
            return set()
        return set(record.get(VIEWERS_FIELD, set()))

    async def recompute_unique_count(self, entity_type: str, entity_id: str) -> int:
        """
        Recompute ``uniqueViewers`` from the union of the daily viewer sets.

        The written value is clamped to the current ``viewCount``: a viewer
        write can land for an event whose primary increment failed, and
        ``uniqueViewers`` must never exceed ``viewCount``.

        Returns:
            The value written (0 when the entity has no view counter yet)
        """
        pk = schema.pk_entity(entity_type, entity_id)
        rows = await self._store.query_prefix(
            pk,
            schema.SK_VIEWERS,
            limit=self.lookback_days,
            newest_first=self.lookback_days is not None,
        )
        viewers: set[str] = set()
        for row in rows:
            viewers |= set(row.get(VIEWERS_FIELD, set()))

        counter = await self._store.get(pk, schema.sk_views())
        if counter is None:
            # No view counter yet; writing one would create a row without viewCount
            return 0

        view_count = int(counter.get(schema.ATTR_VIEW_COUNT, 0))
        unique = min(len(viewers), view_count)
        await self._store.set_fields(pk, schema.sk_views(), {"uniqueViewers": unique})

        logger.debug(
            "Recomputed unique viewers",
            extra={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "days": len(rows),
                "distinct": len(viewers),
                "unique_viewers": unique,
            },
        )
        return unique
