"""End-to-end scenarios through the engine, against both store backends."""

import pytest


@pytest.fixture(params=["memory", "dynamodb"])
def any_engine(request):
    """Engine over each store backend in turn."""
    if request.param == "memory":
        return request.getfixturevalue("engine")
    return request.getfixturevalue("dynamodb_engine")


async def test_views_with_repeat_viewer(any_engine):
    for user_id in ("u1", "u1", "u2"):
        await any_engine.ingestor.track_view("restaurant", "r1", user_id=user_id)

    report = await any_engine.query.get_analytics("restaurant", "r1")
    assert report.views.view_count == 3
    assert report.views.unique_viewers == 2


async def test_unique_viewers_span_days(any_engine):
    views = [
        ("u1", "2024-06-10T09:00:00Z"),
        ("u2", "2024-06-12T09:00:00Z"),
        ("u1", "2024-06-14T09:00:00Z"),
        ("u3", "2024-06-15T09:00:00Z"),
    ]
    for user_id, timestamp in views:
        await any_engine.ingestor.track_view(
            "restaurant", "r1", user_id=user_id, timestamp=timestamp
        )

    report = await any_engine.query.get_analytics("restaurant", "r1")
    assert report.views.unique_viewers == 3
    assert report.views.unique_viewers <= report.views.view_count


async def test_likes_appear_in_engagement_data(any_engine):
    for _ in range(5):
        await any_engine.ingestor.track_engagement("dish", "d1", "like")

    report = await any_engine.query.get_analytics("dish", "d1")
    assert report.to_dict()["engagementData"] == {"like": 5}


async def test_trending_top_two(any_engine):
    for entity_id, views in (("r1", 10), ("r2", 30), ("r3", 20)):
        for _ in range(views):
            await any_engine.ingestor.track_view("restaurant", entity_id)

    top = await any_engine.query.get_trending("restaurant", limit=2)
    assert [(e.entity_id, e.view_count) for e in top] == [("r2", 30), ("r3", 20)]


async def test_week_series_is_gap_filled(any_engine):
    await any_engine.ingestor.track_view(
        "restaurant", "r1", device_type="mobile", timestamp="2024-06-11T18:00:00Z"
    )
    await any_engine.ingestor.track_engagement("restaurant", "r1", "share")

    report = await any_engine.query.get_analytics("restaurant", "r1", "week")

    counts = [(p.day.isoformat(), p.total_events) for p in report.time_series]
    assert counts == [
        ("2024-06-09", 0),
        ("2024-06-10", 0),
        ("2024-06-11", 1),
        ("2024-06-12", 0),
        ("2024-06-13", 0),
        ("2024-06-14", 0),
        ("2024-06-15", 1),
    ]
    assert report.time_series[2].by_device["mobile"] == 1


async def test_duplicate_delivery_double_counts(any_engine):
    event = {"eventType": "like", "entityType": "dish", "entityId": "d1", "userId": "u1"}

    await any_engine.ingestor.track_event(event)
    await any_engine.ingestor.track_event(event)

    report = await any_engine.query.get_analytics("dish", "d1")
    assert report.engagements == {"like": 2}
    assert report.rollup.total_events == 2


async def test_cache_expiry(any_engine, clock):
    await any_engine.cache.put("trending#restaurant", ["r2", "r3"], ttl_seconds=1)
    assert (await any_engine.query.get_cached("trending#restaurant")).value == ["r2", "r3"]

    clock.advance(seconds=2)

    assert await any_engine.query.get_cached("trending#restaurant") is None


async def test_batch_then_query(any_engine):
    event = {"eventType": "view", "entityType": "dish", "entityId": "d1"}
    records = [
        {"messageId": f"m{i}", "body": {**event, "userId": f"u{i % 3}"}}
        for i in range(6)
    ]

    result = await any_engine.ingestor.ingest_batch(records)

    assert result.processed == 6
    report = await any_engine.query.get_analytics("dish", "d1")
    assert report.views.view_count == 6
    assert report.views.unique_viewers == 3
