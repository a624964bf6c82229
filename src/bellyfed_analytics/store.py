"""Store protocol for analytics counter backends.

This module defines the StoreProtocol that all storage backends must implement.
The protocol uses Python's typing.Protocol with @runtime_checkable decorator,
enabling duck typing and isinstance() checks at runtime.

Records are plain dicts holding ``PK``, ``SK`` and the item attributes.
Numbers come back as ``int`` (or ``float`` when fractional), string sets as
``set[str]``.
"""

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StoreProtocol(Protocol):
    """
    Protocol for analytics storage backends.

    Every mutation is a single-item atomic operation. No multi-item
    transactions are required or assumed. The protocol is divided into:

    - **Lifecycle**: Connection management
    - **Counters**: Atomic ADD on top-level and nested map counters
    - **Sets**: Atomic set union
    - **Items**: Plain put/get/delete and attribute SET
    - **Queries**: Partition range reads and the entity-type index

    Example:
        # Custom backend implementation
        class MyBackend:
            async def get(self, pk: str, sk: str) -> dict[str, Any] | None:
                ...

        # Duck typing - no inheritance needed
        store = MyBackend()
        assert isinstance(store, StoreProtocol)  # True at runtime
    """

    @property
    def table_name(self) -> str:
        """Table (or namespace) the store writes to."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...

    # -------------------------------------------------------------------------
    # Counters
    # -------------------------------------------------------------------------

    async def update_counters(
        self,
        pk: str,
        sk: str,
        counters: Mapping[str, int] | None = None,
        nested: Mapping[str, Mapping[str, int]] | None = None,
        set_fields: Mapping[str, Any] | None = None,
        if_absent: Mapping[str, Any] | None = None,
        ttl: int | None = None,
    ) -> dict[str, Any]:
        """
        Apply counter deltas to one item atomically, creating it if absent.

        Absent counters start at zero (ADD semantics, never GET-then-SET).

        Args:
            pk: Partition key
            sk: Sort key
            counters: Top-level attribute -> delta
            nested: Map attribute -> {map key -> delta}
            set_fields: Attributes to overwrite
            if_absent: Attributes to set only when not yet present
            ttl: Absolute expiry (epoch seconds) to store in ``ttl``

        Returns:
            The full item after the update
        """
        ...

    async def add_to_set(
        self,
        pk: str,
        sk: str,
        field: str,
        values: set[str],
        set_fields: Mapping[str, Any] | None = None,
        ttl: int | None = None,
    ) -> None:
        """Union ``values`` into a string-set attribute (idempotent per value)."""
        ...

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    async def set_fields(self, pk: str, sk: str, fields: Mapping[str, Any]) -> None:
        """Overwrite attributes on an item, creating it if absent."""
        ...

    async def put(
        self,
        pk: str,
        sk: str,
        attributes: Mapping[str, Any],
        ttl: int | None = None,
    ) -> None:
        """Replace an item."""
        ...

    async def get(self, pk: str, sk: str) -> dict[str, Any] | None:
        """Get an item, or None if absent."""
        ...

    async def delete(self, pk: str, sk: str) -> None:
        """Delete an item (no error if absent)."""
        ...

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def query_prefix(
        self,
        pk: str,
        sk_prefix: str,
        limit: int | None = None,
        newest_first: bool = False,
        start_after: str | None = None,
    ) -> list[dict[str, Any]]:
        """Items in a partition whose sort key starts with ``sk_prefix``."""
        ...

    async def query_between(self, pk: str, sk_start: str, sk_end: str) -> list[dict[str, Any]]:
        """Items in a partition with ``sk_start <= SK <= sk_end``."""
        ...

    async def query_entity_type(self, entity_type: str) -> list[dict[str, Any]]:
        """Every view-counter item of one entity type."""
        ...


# Counters and the cache share one protocol
CounterStore = StoreProtocol


async def increment(
    store: StoreProtocol,
    pk: str,
    sk: str,
    field: str,
    delta: int = 1,
    set_fields: Mapping[str, Any] | None = None,
) -> int:
    """Atomically add ``delta`` to a top-level counter and return the new value."""
    item = await store.update_counters(pk, sk, counters={field: delta}, set_fields=set_fields)
    return int(item.get(field, 0))


async def increment_nested(
    store: StoreProtocol,
    pk: str,
    sk: str,
    map_field: str,
    map_key: str,
    delta: int = 1,
) -> int:
    """Atomically add ``delta`` to ``map_field[map_key]`` and return the new value."""
    item = await store.update_counters(pk, sk, nested={map_field: {map_key: delta}})
    return int(item.get(map_field, {}).get(map_key, 0))
