"""In-memory store for tests and local development."""

import copy
import threading
from collections.abc import Mapping
from typing import Any

from . import schema


class InMemoryStore:
    """
    Process-local implementation of StoreProtocol.

    Every operation runs to completion under one lock without awaiting, so
    concurrent increments from any number of tasks or threads converge to
    the arithmetic sum exactly like DynamoDB ADD.
    Returned records are deep copies; callers can never mutate stored state.

    TTL is stored but never enforced here, mirroring DynamoDB where expired
    items linger until background reclamation. Readers must check ``ttl``.
    """

    def __init__(self, table_name: str = "memory") -> None:
        self._table_name = table_name
        self._items: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    @property
    def table_name(self) -> str:
        return self._table_name

    async def close(self) -> None:
        pass

    def _item(self, pk: str, sk: str) -> dict[str, Any]:
        key = (pk, sk)
        if key not in self._items:
            self._items[key] = {schema.ATTR_PK: pk, schema.ATTR_SK: sk}
        return self._items[key]

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
        with self._lock:
            item = self._item(pk, sk)
            for name, value in (if_absent or {}).items():
                item.setdefault(name, copy.deepcopy(value))
            for name, value in (set_fields or {}).items():
                item[name] = copy.deepcopy(value)
            if ttl is not None:
                item[schema.ATTR_TTL] = ttl
            for name, delta in (counters or {}).items():
                item[name] = item.get(name, 0) + delta
            for map_name, deltas in (nested or {}).items():
                target = item.setdefault(map_name, {})
                for key, delta in deltas.items():
                    target[key] = target.get(key, 0) + delta
            return copy.deepcopy(item)

    async def add_to_set(
        self,
        pk: str,
        sk: str,
        field: str,
        values: set[str],
        set_fields: Mapping[str, Any] | None = None,
        ttl: int | None = None,
    ) -> None:
        with self._lock:
            item = self._item(pk, sk)
            item.setdefault(field, set()).update(values)
            for name, value in (set_fields or {}).items():
                item[name] = copy.deepcopy(value)
            if ttl is not None:
                item[schema.ATTR_TTL] = ttl

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    async def set_fields(self, pk: str, sk: str, fields: Mapping[str, Any]) -> None:
        with self._lock:
            item = self._item(pk, sk)
            for name, value in fields.items():
                item[name] = copy.deepcopy(value)

    async def put(
        self,
        pk: str,
        sk: str,
        attributes: Mapping[str, Any],
        ttl: int | None = None,
    ) -> None:
        with self._lock:
            item = {schema.ATTR_PK: pk, schema.ATTR_SK: sk, **copy.deepcopy(dict(attributes))}
            if ttl is not None:
                item[schema.ATTR_TTL] = ttl
            self._items[(pk, sk)] = item

    async def get(self, pk: str, sk: str) -> dict[str, Any] | None:
        with self._lock:
            item = self._items.get((pk, sk))
            return copy.deepcopy(item) if item is not None else None

    async def delete(self, pk: str, sk: str) -> None:
        with self._lock:
            self._items.pop((pk, sk), None)

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
        with self._lock:
            items = sorted(
                (
                    item
                    for (item_pk, item_sk), item in self._items.items()
                    if item_pk == pk and item_sk.startswith(sk_prefix)
                ),
                key=lambda item: item[schema.ATTR_SK],
                reverse=newest_first,
            )
            if start_after is not None:
                if newest_first:
                    items = [i for i in items if i[schema.ATTR_SK] < start_after]
                else:
                    items = [i for i in items if i[schema.ATTR_SK] > start_after]
            if limit is not None:
                items = items[:limit]
            return copy.deepcopy(items)

    async def query_between(self, pk: str, sk_start: str, sk_end: str) -> list[dict[str, Any]]:
        with self._lock:
            items = sorted(
                (
                    item
                    for (item_pk, item_sk), item in self._items.items()
                    if item_pk == pk and sk_start <= item_sk <= sk_end
                ),
                key=lambda item: item[schema.ATTR_SK],
            )
            return copy.deepcopy(items)

    async def query_entity_type(self, entity_type: str) -> list[dict[str, Any]]:
        with self._lock:
            # Same sparse-index rule as GSI1: both key attributes must be present
            items = [
                item
                for item in self._items.values()
                if item.get(schema.ATTR_ENTITY_TYPE) == entity_type
                and schema.ATTR_VIEW_COUNT in item
            ]
            return copy.deepcopy(items)
