"""TTL-bounded cache for precomputed values."""

import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from . import schema
from .exceptions import ValidationError
from .models import CacheEntry
from .store import StoreProtocol
from .windows import format_timestamp, utc_now

logger = logging.getLogger(__name__)


class CacheLayer:
    """
    Generic key-value cache, independent of the counters.

    Keys have the form ``"<partitionKey>#<sortKey>"``; an unscoped key is
    stored under sort key ``DATA``. Values are stored JSON-encoded, so any
    JSON-serializable value round-trips.

    A relative ``ttl_seconds`` is converted to an absolute expiry at write
    time. Physical deletion is left to the backend's TTL reclamation, which
    can lag by hours; get() therefore checks the expiry itself and treats an
    expired row as absent.

    Example:
        cache = CacheLayer(store)
        await cache.put("trending#restaurant", [...], ttl_seconds=300)
        entry = await cache.get("trending#restaurant")
        if entry is not None:
            print(entry.value)
    """

    def __init__(
        self,
        store: StoreProtocol,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    def _parse_key(self, key: Any) -> tuple[str, str]:
        if key is None or key == "":
            raise ValidationError.required("key")
        if not isinstance(key, str):
            raise ValidationError("key", key, "key must be a string")
        pk, sk = schema.parse_cache_key(key)
        if not pk:
            raise ValidationError("key", key, "key must not start with '#'")
        return pk, sk

    async def put(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """
        Store a value, overwriting any previous entry.

        Args:
            key: Cache key
            value: Any JSON-serializable value
            ttl_seconds: Optional lifetime in seconds (positive integer)

        Raises:
            ValidationError: If the key or ttl is invalid
        """
        pk, sk = self._parse_key(key)
        if ttl_seconds is not None and (
            isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds <= 0
        ):
            raise ValidationError("ttl", ttl_seconds, "ttl must be a positive integer")

        now = self._clock()
        expires_at = None
        if ttl_seconds is not None:
            expires_at = schema.calculate_ttl(int(now.timestamp() * 1000), ttl_seconds)

        await self._store.put(
            pk,
            sk,
            {"value": json.dumps(value), "lastUpdated": format_timestamp(now)},
            ttl=expires_at,
        )
        logger.debug("Cached value", extra={"key": key, "ttl": ttl_seconds})

    async def get(self, key: str) -> CacheEntry | None:
        """Get a live entry, or None when absent or expired."""
        pk, sk = self._parse_key(key)
        record = await self._store.get(pk, sk)
        if record is None:
            return None

        entry = CacheEntry(
            key=key,
            value=json.loads(record["value"]) if "value" in record else None,
            last_updated=record.get("lastUpdated"),
            expires_at=record.get(schema.ATTR_TTL),
        )
        if entry.is_expired(self._clock().timestamp()):
            return None
        return entry

    async def delete(self, key: str) -> None:
        """Remove an entry (no error if absent)."""
        pk, sk = self._parse_key(key)
        await self._store.delete(pk, sk)
