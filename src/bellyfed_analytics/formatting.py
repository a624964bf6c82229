"""
Plain-text rendering of analytics results for the CLI.

Tables use box-drawing borders:

    +------------+-------+---------+
    | Entity     | Views | Viewers |
    +------------+-------+---------+
    | r2         |    30 |      12 |
    +------------+-------+---------+
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import AnalyticsReport, EngagementRecord, TrendingEntity


def _align(cell: str, width: int, alignment: str) -> str:
    if alignment == "r":
        return cell.rjust(width)
    if alignment == "c":
        return cell.center(width)
    return cell.ljust(width)


class TableRenderer:
    """Render rows as a box-drawing table.

    Args:
        alignments: Per-column alignment ('l', 'r' or 'c'); missing columns
            are left-aligned
    """

    def __init__(self, alignments: list[str] | None = None) -> None:
        self._alignments = alignments or []

    def render(self, headers: list[str], rows: list[list[str]]) -> str:
        if not headers:
            return ""

        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row[: len(widths)]):
                widths[i] = max(widths[i], len(cell))

        separator = "+-" + "-+-".join("-" * w for w in widths) + "-+"
        lines = [
            separator,
            "| " + " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)) + " |",
            separator,
        ]
        for row in rows:
            cells = [
                _align(
                    cell,
                    widths[i] if i < len(widths) else len(cell),
                    self._alignments[i] if i < len(self._alignments) else "l",
                )
                for i, cell in enumerate(row)
            ]
            lines.append("| " + " | ".join(cells) + " |")
        lines.append(separator)

        return "\n".join(lines)


def format_trending(entity_type: str, entities: list[TrendingEntity]) -> str:
    """Ranked trending table."""
    if not entities:
        return f"No {entity_type} views recorded"

    rows = [
        [
            str(rank),
            entity.entity_id,
            f"{entity.view_count:,}",
            f"{entity.unique_viewers:,}",
            entity.last_updated or "-",
        ]
        for rank, entity in enumerate(entities, start=1)
    ]
    return TableRenderer(["r", "l", "r", "r", "l"]).render(
        ["#", "Entity", "Views", "Viewers", "Last Updated"], rows
    )


def format_report(report: AnalyticsReport) -> str:
    """Summary block, engagement counts and (if present) the daily series."""
    views = report.views
    lines = [
        f"Entity: {report.entity_type}#{report.entity_id}",
        f"Views: {views.view_count:,} ({views.unique_viewers:,} unique)",
        f"Total events: {report.rollup.total_events:,}",
        f"Last updated: {views.last_updated or '-'}",
    ]

    if report.engagements:
        lines.append("")
        lines.append(
            TableRenderer(["l", "r"]).render(
                ["Engagement", "Count"],
                [[name, f"{count:,}"] for name, count in sorted(report.engagements.items())],
            )
        )

    if report.time_series:
        devices = list(report.time_series[0].by_device)
        lines.append("")
        lines.append(
            TableRenderer(["l", "r"] + ["r"] * (len(devices) + 1)).render(
                ["Date", "Events", "Unique"] + [d.capitalize() for d in devices],
                [
                    [point.day.isoformat(), f"{point.total_events:,}", f"{point.unique_viewers:,}"]
                    + [f"{point.by_device.get(d, 0):,}" for d in devices]
                    for point in report.time_series
                ],
            )
        )

    return "\n".join(lines)


def format_engagements(records: list[EngagementRecord]) -> str:
    """Engagement record listing, newest first."""
    if not records:
        return "No engagements recorded"
    return TableRenderer().render(
        ["Timestamp", "Type", "User", "Id"],
        [[r.timestamp, r.engagement_type, r.user_id, r.engagement_id] for r in records],
    )
