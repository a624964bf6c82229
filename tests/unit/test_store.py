"""Contract tests run against every StoreProtocol implementation."""

import asyncio

import pytest

from bellyfed_analytics import InMemoryStore, Repository, StoreProtocol
from bellyfed_analytics.store import increment, increment_nested


@pytest.fixture(params=["memory", "dynamodb"])
def any_store(request):
    """Each store backend in turn."""
    if request.param == "memory":
        return InMemoryStore()
    return request.getfixturevalue("repo")


def test_backends_satisfy_protocol():
    assert isinstance(InMemoryStore(), StoreProtocol)
    assert isinstance(Repository(), StoreProtocol)


class TestCounters:
    async def test_increment_creates_from_zero(self, any_store):
        assert await increment(any_store, "restaurant#r1", "VIEWS", "viewCount") == 1
        assert await increment(any_store, "restaurant#r1", "VIEWS", "viewCount", 4) == 5

    async def test_increment_nested_creates_map(self, any_store):
        value = await increment_nested(any_store, "dish#d1", "ROLLUP", "eventsByType", "like")
        assert value == 1
        value = await increment_nested(any_store, "dish#d1", "ROLLUP", "eventsByType", "like")
        assert value == 2
        value = await increment_nested(any_store, "dish#d1", "ROLLUP", "eventsByType", "share")
        assert value == 1

    async def test_combined_update(self, any_store):
        record = await any_store.update_counters(
            "dish#d1",
            "daily_2024-06-15",
            counters={"totalEvents": 1},
            nested={"eventsByType": {"view": 1}, "deviceTypes": {"mobile": 1}},
            set_fields={"lastUpdated": "t1"},
            if_absent={"uniqueViewers": 0},
            ttl=1_800_000_000,
        )
        assert record["totalEvents"] == 1
        assert record["eventsByType"] == {"view": 1}
        assert record["deviceTypes"] == {"mobile": 1}
        assert record["lastUpdated"] == "t1"
        assert record["uniqueViewers"] == 0
        assert record["ttl"] == 1_800_000_000

    async def test_if_absent_does_not_overwrite(self, any_store):
        await any_store.set_fields("restaurant#r1", "VIEWS", {"uniqueViewers": 7})
        record = await any_store.update_counters(
            "restaurant#r1", "VIEWS", counters={"viewCount": 1}, if_absent={"uniqueViewers": 0}
        )
        assert record["uniqueViewers"] == 7

    async def test_concurrent_increments_converge(self, any_store):
        await asyncio.gather(
            *(
                any_store.update_counters(
                    "restaurant#r1",
                    "ROLLUP",
                    counters={"totalEvents": 1},
                    nested={"eventsByType": {"view": 1}},
                )
                for _ in range(25)
            )
        )
        record = await any_store.get("restaurant#r1", "ROLLUP")
        assert record["totalEvents"] == 25
        assert record["eventsByType"] == {"view": 25}


class TestSets:
    async def test_add_to_set_is_idempotent(self, any_store):
        await any_store.add_to_set("restaurant#r1", "VIEWERS#2024-06-15", "viewers", {"u1"})
        await any_store.add_to_set("restaurant#r1", "VIEWERS#2024-06-15", "viewers", {"u1", "u2"})
        await any_store.add_to_set(
            "restaurant#r1",
            "VIEWERS#2024-06-15",
            "viewers",
            {"u1"},
            set_fields={"lastUpdated": "t2"},
        )

        record = await any_store.get("restaurant#r1", "VIEWERS#2024-06-15")
        assert record["viewers"] == {"u1", "u2"}
        assert record["lastUpdated"] == "t2"

    async def test_empty_set_is_noop(self, any_store):
        await any_store.add_to_set("restaurant#r1", "VIEWERS#2024-06-15", "viewers", set())
        assert await any_store.get("restaurant#r1", "VIEWERS#2024-06-15") is None


class TestItems:
    async def test_put_get_delete(self, any_store):
        await any_store.put("home", "DATA", {"value": "[1, 2]", "lastUpdated": "t"}, ttl=123)

        record = await any_store.get("home", "DATA")
        assert record["value"] == "[1, 2]"
        assert record["ttl"] == 123

        await any_store.delete("home", "DATA")
        assert await any_store.get("home", "DATA") is None

    async def test_put_replaces(self, any_store):
        await any_store.put("home", "DATA", {"a": 1, "b": 2})
        await any_store.put("home", "DATA", {"a": 3})

        record = await any_store.get("home", "DATA")
        assert record["a"] == 3
        assert "b" not in record

    async def test_nested_metadata_round_trips(self, any_store):
        metadata = {"source": "feed", "position": 3, "tags": ["a", "b"], "extra": {"x": True}}
        await any_store.put("dish#d1", "ENGAGEMENT#01", {"metadata": metadata})

        record = await any_store.get("dish#d1", "ENGAGEMENT#01")
        assert record["metadata"] == metadata

    async def test_get_missing(self, any_store):
        assert await any_store.get("nope", "DATA") is None

    async def test_delete_missing_is_noop(self, any_store):
        await any_store.delete("nope", "DATA")


class TestQueries:
    async def _seed(self, store):
        for day in ("2024-06-13", "2024-06-14", "2024-06-15"):
            await store.update_counters(
                "restaurant#r1", f"daily_{day}", counters={"totalEvents": 1}
            )
        await store.update_counters("restaurant#r1", "hourly_2024-06-15_12", counters={"x": 1})
        await store.update_counters("restaurant#r2", "daily_2024-06-14", counters={"x": 1})

    async def test_query_prefix(self, any_store):
        await self._seed(any_store)

        rows = await any_store.query_prefix("restaurant#r1", "daily_")
        assert [r["SK"] for r in rows] == [
            "daily_2024-06-13",
            "daily_2024-06-14",
            "daily_2024-06-15",
        ]

    async def test_query_prefix_newest_first_with_limit(self, any_store):
        await self._seed(any_store)

        rows = await any_store.query_prefix("restaurant#r1", "daily_", limit=2, newest_first=True)
        assert [r["SK"] for r in rows] == ["daily_2024-06-15", "daily_2024-06-14"]

    async def test_query_prefix_start_after(self, any_store):
        await self._seed(any_store)

        rows = await any_store.query_prefix(
            "restaurant#r1", "daily_", newest_first=True, start_after="daily_2024-06-15"
        )
        assert [r["SK"] for r in rows] == ["daily_2024-06-14", "daily_2024-06-13"]

    async def test_query_between_is_inclusive(self, any_store):
        await self._seed(any_store)

        rows = await any_store.query_between(
            "restaurant#r1", "daily_2024-06-14", "daily_2024-06-15"
        )
        assert [r["SK"] for r in rows] == ["daily_2024-06-14", "daily_2024-06-15"]

    async def test_query_entity_type_only_returns_view_counters(self, any_store):
        for entity_id in ("r1", "r2"):
            await any_store.update_counters(
                f"restaurant#{entity_id}",
                "VIEWS",
                counters={"viewCount": 1},
                set_fields={"entityType": "restaurant"},
            )
        await any_store.update_counters(
            "dish#d1", "VIEWS", counters={"viewCount": 1}, set_fields={"entityType": "dish"}
        )
        await any_store.update_counters("restaurant#r3", "ROLLUP", counters={"totalEvents": 1})

        rows = await any_store.query_entity_type("restaurant")
        assert sorted(r["PK"] for r in rows) == ["restaurant#r1", "restaurant#r2"]
