"""Tests for the read-only query facade."""

import pytest

from bellyfed_analytics.exceptions import ValidationError


class TestGetAnalytics:
    async def test_unknown_entity_is_zero(self, engine):
        report = await engine.query.get_analytics("restaurant", "ghost")

        assert report.to_dict() == {
            "entityType": "restaurant",
            "entityId": "ghost",
            "viewData": {"viewCount": 0, "uniqueViewers": 0, "lastUpdated": None},
            "engagementData": {},
            "timeSeriesData": [],
            "rollup": {"totalEvents": 0, "eventsByType": {}, "lastUpdated": None},
        }

    async def test_report(self, engine):
        await engine.ingestor.track_view("restaurant", "r1", user_id="u1")
        await engine.ingestor.track_view("restaurant", "r1", user_id="u2")
        for _ in range(3):
            await engine.ingestor.track_engagement("restaurant", "r1", "like")
        await engine.ingestor.track_engagement("restaurant", "r1", "comment")

        report = await engine.query.get_analytics("restaurant", "r1", "week")

        assert report.views.view_count == 2
        assert report.views.unique_viewers == 2
        assert report.engagements == {"comment": 1, "like": 3}
        assert report.rollup.total_events == 6
        assert len(report.time_series) == 7
        assert report.time_series[-1].total_events == 6
        assert report.time_series[-1].by_type["like"] == 3

    async def test_invalid_period(self, engine):
        with pytest.raises(ValidationError):
            await engine.query.get_analytics("restaurant", "r1", "decade")

    async def test_missing_entity_type(self, engine):
        with pytest.raises(ValidationError, match="entityType is required"):
            await engine.query.get_analytics(None, "r1")


class TestGetTrending:
    async def test_ranks_viewed_entities(self, engine):
        for entity_id, views in (("r1", 1), ("r2", 3), ("r3", 2)):
            for _ in range(views):
                await engine.ingestor.track_view("restaurant", entity_id)

        top = await engine.query.get_trending("restaurant", limit=2)
        assert [(e.entity_id, e.view_count) for e in top] == [("r2", 3), ("r3", 2)]

    async def test_engagement_only_entities_not_ranked(self, engine):
        await engine.ingestor.track_engagement("restaurant", "r1", "like")
        assert await engine.query.get_trending("restaurant") == []

    async def test_requires_entity_type(self, engine):
        with pytest.raises(ValidationError):
            await engine.query.get_trending("")


class TestGetEngagements:
    async def test_newest_first_with_paging(self, engine, clock):
        ids = []
        for engagement_type in ("like", "comment", "share"):
            result = await engine.ingestor.track_engagement(
                "dish", "d1", engagement_type, user_id="u1"
            )
            ids.append(result.engagement_id)
            clock.advance(milliseconds=5)

        page = await engine.query.get_engagements("dish", "d1", limit=2)
        assert [r.engagement_id for r in page] == [ids[2], ids[1]]
        assert page[0].engagement_type == "share"
        assert page[0].user_id == "u1"

        rest = await engine.query.get_engagements(
            "dish", "d1", limit=2, start_after=page[-1].engagement_id
        )
        assert [r.engagement_id for r in rest] == [ids[0]]

    async def test_expired_records_hidden(self, engine, clock):
        await engine.ingestor.track_engagement("dish", "d1", "like")
        clock.advance(days=91)

        assert await engine.query.get_engagements("dish", "d1") == []

    async def test_invalid_limit(self, engine):
        with pytest.raises(ValidationError):
            await engine.query.get_engagements("dish", "d1", limit=0)


async def test_get_cached(engine):
    await engine.cache.put("homepage", {"hero": "r1"})

    entry = await engine.query.get_cached("homepage")
    assert entry.value == {"hero": "r1"}
    assert await engine.query.get_cached("missing") is None
