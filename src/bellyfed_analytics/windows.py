"""Time bucketing and period resolution."""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from .exceptions import ValidationError
from .models import Period

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def format_timestamp(dt: datetime) -> str:
    """
    Format a datetime as a fixed-width ISO-8601 UTC string.

    The fixed width keeps stored ``lastUpdated`` values lexicographically
    comparable, which the trending window filter relies on.
    """
    return dt.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Any, field_name: str = "timestamp") -> datetime:
    """
    Parse an event timestamp.

    Accepts ISO-8601 strings (with ``Z`` or an offset; naive values are read
    as UTC) and epoch milliseconds.

    Raises:
        ValidationError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        raise ValidationError(field_name, value, f"Invalid {field_name} format")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            # NaN, infinity and epochs outside the platform's range
            raise ValidationError(field_name, value, f"Invalid {field_name} format") from None
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(field_name, value, f"Invalid {field_name} format") from None
        return dt if dt.tzinfo else dt.replace(tzinfo=UTC)
    raise ValidationError(field_name, value, f"Invalid {field_name} format")


@dataclass(frozen=True)
class BucketKeys:
    """Day, hour and minute components of an event time (UTC)."""

    date_key: str  # YYYY-MM-DD
    hour: int
    minute_key: str  # HH:MM

    @classmethod
    def from_datetime(cls, dt: datetime) -> "BucketKeys":
        dt = dt.astimezone(UTC)
        return cls(
            date_key=dt.strftime("%Y-%m-%d"),
            hour=dt.hour,
            minute_key=dt.strftime("%H:%M"),
        )


def resolve_period(period: Period, today: date) -> tuple[date, date]:
    """
    Resolve a period to an inclusive ``[start, end]`` date range ending today.

    A week is exactly seven days including today.
    """
    return today - timedelta(days=period.days - 1), today


def period_start(period: Period, now: datetime) -> datetime:
    """Start of the window (midnight UTC of the first day)."""
    start, _ = resolve_period(period, now.astimezone(UTC).date())
    return datetime.combine(start, time.min, tzinfo=UTC)


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def iter_minutes(end: datetime, minutes: int) -> Iterator[datetime]:
    """Yield the last ``minutes`` minute boundaries, oldest first, ending at ``end``."""
    end = end.astimezone(UTC).replace(second=0, microsecond=0)
    for offset in range(minutes - 1, -1, -1):
        yield end - timedelta(minutes=offset)
