"""Top-K ranking of entities by views."""

from collections.abc import Callable
from datetime import datetime

from . import schema
from .exceptions import ValidationError
from .models import Period, TrendingEntity
from .store import StoreProtocol
from .windows import format_timestamp, period_start, utc_now

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def validate_limit(limit: object) -> int:
    """
    Validate a trending limit.

    Raises:
        ValidationError: If limit is not an integer in [1, 100]
    """
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise ValidationError("limit", limit, "limit must be an integer")
    if not 1 <= limit <= MAX_LIMIT:
        raise ValidationError("limit", limit, f"limit must be between 1 and {MAX_LIMIT}")
    return limit


class TrendingIndex:
    """
    Ranks the view counters of one entity type.

    This is a read-time sort over every view counter of the type (read from
    the entity-type index), not a maintained top-K structure. Ordering is
    ``viewCount`` descending, then ``uniqueViewers`` descending, then most
    recent ``lastUpdated``.
    """

    def __init__(
        self,
        store: StoreProtocol,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def top_k(
        self,
        entity_type: str,
        limit: int = DEFAULT_LIMIT,
        period: Period | str | None = None,
    ) -> list[TrendingEntity]:
        """
        Top entities of a type by views.

        Args:
            entity_type: Entity type to rank
            limit: Maximum entries (1-100)
            period: Only entities updated within this window

        Returns:
            Entities, best first
        """
        limit = validate_limit(limit)
        cutoff = None
        if period is not None:
            period = period if isinstance(period, Period) else Period.parse(period)
            cutoff = format_timestamp(period_start(period, self._clock()))

        candidates = []
        for record in await self._store.query_entity_type(entity_type):
            last_updated = record.get("lastUpdated")
            # Fixed-width ISO strings compare in time order
            if cutoff is not None and (last_updated is None or last_updated < cutoff):
                continue
            _, entity_id = schema.parse_pk_entity(record[schema.ATTR_PK])
            candidates.append(
                TrendingEntity(
                    entity_id=entity_id,
                    view_count=int(record.get(schema.ATTR_VIEW_COUNT, 0)),
                    unique_viewers=int(record.get("uniqueViewers", 0)),
                    last_updated=last_updated,
                )
            )

        candidates.sort(key=lambda entity: entity.sort_key, reverse=True)
        return candidates[:limit]
