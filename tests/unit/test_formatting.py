"""Tests for CLI table rendering."""

from datetime import date

from bellyfed_analytics.formatting import (
    TableRenderer,
    format_engagements,
    format_report,
    format_trending,
)
from bellyfed_analytics.models import (
    AnalyticsReport,
    EngagementRecord,
    EntityRollup,
    TimeSeriesPoint,
    TrendingEntity,
    ViewCounter,
)


class TestTableRenderer:
    """Tests for TableRenderer."""

    def test_render(self) -> None:
        output = TableRenderer(["l", "r"]).render(["Name", "Count"], [["a", "1"], ["long", "200"]])

        assert output.splitlines() == [
            "+------+-------+",
            "| Name | Count |",
            "+------+-------+",
            "| a    |     1 |",
            "| long |   200 |",
            "+------+-------+",
        ]

    def test_center_alignment(self) -> None:
        output = TableRenderer(["c"]).render(["Status"], [["ok"]])
        assert "|   ok   |" in output

    def test_no_headers(self) -> None:
        assert TableRenderer().render([], [["x"]]) == ""


def test_format_trending() -> None:
    output = format_trending(
        "restaurant",
        [
            TrendingEntity("r2", 1200, 340, "2024-06-15T12:00:00.000000Z"),
            TrendingEntity("r1", 7, 2, None),
        ],
    )

    assert "| 1 | r2     | 1,200 |     340 |" in output
    assert "| 2 | r1     |     7 |       2 | -" in output


def test_format_trending_empty() -> None:
    assert format_trending("dish", []) == "No dish views recorded"


def test_format_report() -> None:
    report = AnalyticsReport(
        entity_type="restaurant",
        entity_id="r1",
        views=ViewCounter("restaurant", "r1", 10, 4, "2024-06-15T12:00:00.000000Z"),
        engagements={"like": 3},
        rollup=EntityRollup("restaurant", "r1", 13, {"view": 10, "like": 3}),
        time_series=[TimeSeriesPoint(day=date(2024, 6, 15), total_events=13)],
    )

    output = format_report(report)

    assert "Entity: restaurant#r1" in output
    assert "Views: 10 (4 unique)" in output
    assert "Total events: 13" in output
    assert "| Date       | Events | Unique | Mobile | Desktop | Tablet | Other |" in output


def test_format_report_without_extras() -> None:
    report = AnalyticsReport(
        entity_type="dish",
        entity_id="d1",
        views=ViewCounter("dish", "d1"),
        engagements={},
        rollup=EntityRollup("dish", "d1"),
    )

    assert format_report(report).splitlines() == [
        "Entity: dish#d1",
        "Views: 0 (0 unique)",
        "Total events: 0",
        "Last updated: -",
    ]


def test_format_engagements() -> None:
    records = [
        EngagementRecord("01J0", "dish", "d1", "u1", "like", "2024-06-15T12:00:00.000000Z"),
    ]

    output = format_engagements(records)
    assert "| 2024-06-15T12:00:00.000000Z | like | u1   | 01J0 |" in output
    assert format_engagements([]) == "No engagements recorded"
