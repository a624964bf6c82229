"""Command-line interface for bellyfed-analytics."""

import asyncio
import dataclasses
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from .config import Settings
from .engine import AnalyticsEngine
from .exceptions import AnalyticsError, NotFoundError
from .formatting import format_engagements, format_report, format_trending
from .repository import Repository
from .trending import DEFAULT_LIMIT

F = TypeVar("F", bound=Callable[..., Any])

PERIODS = ["day", "week", "month", "year"]


def storage_options(func: F) -> F:
    """Table and endpoint options shared by every command."""
    options = [
        click.option(
            "--table-name",
            envvar="ANALYTICS_TABLE",
            help="Analytics DynamoDB table (default: $ANALYTICS_TABLE or bellyfed-analytics)",
        ),
        click.option(
            "--cache-table",
            envvar="CACHE_TABLE",
            help="Cache DynamoDB table (default: $CACHE_TABLE or bellyfed-analytics-cache)",
        ),
        click.option(
            "--region",
            help="AWS region (default: use boto3 defaults)",
        ),
        click.option(
            "--endpoint-url",
            help=(
                "AWS endpoint URL "
                "(e.g., http://localhost:4566 for LocalStack, or other AWS-compatible services)"
            ),
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_settings(
    table_name: str | None,
    cache_table: str | None,
    region: str | None,
    endpoint_url: str | None,
) -> Settings:
    """Environment settings with command-line overrides applied."""
    settings = Settings.from_environment()
    overrides = {
        "table_name": table_name,
        "cache_table_name": cache_table,
        "region": region,
        "endpoint_url": endpoint_url,
    }
    return dataclasses.replace(settings, **{k: v for k, v in overrides.items() if v})


def build_engine(settings: Settings) -> AnalyticsEngine:
    return AnalyticsEngine.from_settings(settings)


def run_with_engine(
    settings: Settings, action: Callable[[AnalyticsEngine], Awaitable[None]]
) -> None:
    """Run an action against a fresh engine, exiting 1 on failure."""

    async def _run() -> None:
        async with build_engine(settings) as engine:
            await action(engine)

    try:
        asyncio.run(_run())
    except AnalyticsError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(package_name="bellyfed-analytics")
def cli() -> None:
    """bellyfed-analytics event analytics CLI."""
    pass


# ---------------------------------------------------------------------------
# Table management
# ---------------------------------------------------------------------------


@cli.command("create-table")
@storage_options
def create_table(
    table_name: str | None,
    cache_table: str | None,
    region: str | None,
    endpoint_url: str | None,
) -> None:
    """Create the analytics and cache tables."""
    settings = build_settings(table_name, cache_table, region, endpoint_url)

    async def _create() -> None:
        for name in (settings.table_name, settings.cache_table_name):
            async with Repository(name, settings.region, settings.endpoint_url) as repo:
                click.echo(f"Creating table: {name}")
                await repo.create_table()
        click.echo("✓ Tables ready")

    try:
        asyncio.run(_create())
    except Exception as e:
        click.echo(f"✗ Table creation failed: {e}", err=True)
        sys.exit(1)


@cli.command("delete-table")
@storage_options
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    help="Skip confirmation prompt",
)
def delete_table(
    table_name: str | None,
    cache_table: str | None,
    region: str | None,
    endpoint_url: str | None,
    yes: bool,
) -> None:
    """Delete the analytics and cache tables."""
    settings = build_settings(table_name, cache_table, region, endpoint_url)

    if not yes:
        click.confirm(
            f"Are you sure you want to delete tables '{settings.table_name}' "
            f"and '{settings.cache_table_name}'?",
            abort=True,
        )

    async def _delete() -> None:
        for name in (settings.table_name, settings.cache_table_name):
            async with Repository(name, settings.region, settings.endpoint_url) as repo:
                await repo.delete_table()
                click.echo(f"✓ Table '{name}' deleted")

    try:
        asyncio.run(_delete())
    except Exception as e:
        click.echo(f"✗ Deletion failed: {e}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


@cli.command("track-view")
@storage_options
@click.argument("entity_type")
@click.argument("entity_id")
@click.option("--user-id", help="Viewer id (enables unique viewer tracking)")
@click.option("--device-type", help="Client device (mobile, desktop, tablet)")
def track_view(
    table_name: str | None,
    cache_table: str | None,
    region: str | None,
    endpoint_url: str | None,
    entity_type: str,
    entity_id: str,
    user_id: str | None,
    device_type: str | None,
) -> None:
    """Record a view of ENTITY_TYPE ENTITY_ID."""

    async def _track(engine: AnalyticsEngine) -> None:
        result = await engine.ingestor.track_view(
            entity_type, entity_id, user_id=user_id, device_type=device_type
        )
        click.echo(f"✓ View tracked: viewCount={result.view_count}")
        if result.degraded:
            click.echo(f"⚠ Skipped aggregates: {', '.join(result.degraded)}", err=True)

    run_with_engine(build_settings(table_name, cache_table, region, endpoint_url), _track)


@cli.command("track-engagement")
@storage_options
@click.argument("entity_type")
@click.argument("entity_id")
@click.argument("engagement_type")
@click.option("--user-id", help="Acting user id")
@click.option("--metadata", help="JSON object stored with the engagement")
def track_engagement(
    table_name: str | None,
    cache_table: str | None,
    region: str | None,
    endpoint_url: str | None,
    entity_type: str,
    entity_id: str,
    engagement_type: str,
    user_id: str | None,
    metadata: str | None,
) -> None:
    """Record an ENGAGEMENT_TYPE (like, comment, share, save, click)."""
    parsed_metadata = None
    if metadata:
        try:
            parsed_metadata = json.loads(metadata)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint="--metadata") from None

    async def _track(engine: AnalyticsEngine) -> None:
        result = await engine.ingestor.track_engagement(
            entity_type,
            entity_id,
            engagement_type,
            user_id=user_id,
            metadata=parsed_metadata,
        )
        click.echo(f"✓ Engagement tracked: id={result.engagement_id} count={result.count}")
        if result.degraded:
            click.echo(f"⚠ Skipped aggregates: {', '.join(result.degraded)}", err=True)

    run_with_engine(build_settings(table_name, cache_table, region, endpoint_url), _track)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@cli.command()
@storage_options
@click.argument("entity_type")
@click.argument("entity_id")
@click.option("--period", type=click.Choice(PERIODS), help="Include a daily series")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def analytics(
    table_name: str | None,
    cache_table: str | None,
    region: str | None,
    endpoint_url: str | None,
    entity_type: str,
    entity_id: str,
    period: str | None,
    as_json: bool,
) -> None:
    """Show analytics for ENTITY_TYPE ENTITY_ID."""

    async def _show(engine: AnalyticsEngine) -> None:
        report = await engine.query.get_analytics(entity_type, entity_id, period)
        if as_json:
            click.echo(json.dumps(report.to_dict(), indent=2))
        else:
            click.echo(format_report(report))

    run_with_engine(build_settings(table_name, cache_table, region, endpoint_url), _show)


@cli.command()
@storage_options
@click.argument("entity_type")
@click.option("--limit", default=DEFAULT_LIMIT, type=click.IntRange(1, 100), show_default=True)
@click.option("--period", type=click.Choice(PERIODS), help="Only entities updated in this window")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def trending(
    table_name: str | None,
    cache_table: str | None,
    region: str | None,
    endpoint_url: str | None,
    entity_type: str,
    limit: int,
    period: str | None,
    as_json: bool,
) -> None:
    """Show the top ENTITY_TYPE entities by views."""

    async def _show(engine: AnalyticsEngine) -> None:
        entities = await engine.query.get_trending(entity_type, limit, period)
        if as_json:
            click.echo(json.dumps([e.to_dict() for e in entities], indent=2))
        else:
            click.echo(format_trending(entity_type, entities))

    run_with_engine(build_settings(table_name, cache_table, region, endpoint_url), _show)


@cli.command()
@storage_options
@click.argument("entity_type")
@click.argument("entity_id")
@click.option("--limit", default=20, type=click.IntRange(1, 100), show_default=True)
def engagements(
    table_name: str | None,
    cache_table: str | None,
    region: str | None,
    endpoint_url: str | None,
    entity_type: str,
    entity_id: str,
    limit: int,
) -> None:
    """List recent engagements of ENTITY_TYPE ENTITY_ID."""

    async def _show(engine: AnalyticsEngine) -> None:
        records = await engine.query.get_engagements(entity_type, entity_id, limit=limit)
        click.echo(format_engagements(records))

    run_with_engine(build_settings(table_name, cache_table, region, endpoint_url), _show)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


@cli.command("cache-put")
@storage_options
@click.argument("key")
@click.argument("value")
@click.option("--ttl", type=click.IntRange(min=1), help="Lifetime in seconds")
def cache_put(
    table_name: str | None,
    cache_table: str | None,
    region: str | None,
    endpoint_url: str | None,
    key: str,
    value: str,
    ttl: int | None,
) -> None:
    """Cache VALUE under KEY (VALUE is parsed as JSON when possible)."""
    try:
        parsed: Any = json.loads(value)
    except json.JSONDecodeError:
        parsed = value

    async def _put(engine: AnalyticsEngine) -> None:
        await engine.cache.put(key, parsed, ttl_seconds=ttl)
        click.echo(f"✓ Cached '{key}'")

    run_with_engine(build_settings(table_name, cache_table, region, endpoint_url), _put)


@cli.command("cache-get")
@storage_options
@click.argument("key")
def cache_get(
    table_name: str | None,
    cache_table: str | None,
    region: str | None,
    endpoint_url: str | None,
    key: str,
) -> None:
    """Print the cached value for KEY."""

    async def _get(engine: AnalyticsEngine) -> None:
        entry = await engine.query.get_cached(key)
        if entry is None:
            raise NotFoundError("Cached data", key)
        click.echo(json.dumps(entry.value, indent=2))

    run_with_engine(build_settings(table_name, cache_table, region, endpoint_url), _get)


if __name__ == "__main__":
    cli()
