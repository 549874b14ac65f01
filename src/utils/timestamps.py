"""Helpers for Stripe epoch timestamps and timezone-safe comparisons."""

from datetime import datetime, timezone

SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def from_epoch(value: int | float | None) -> datetime | None:
    """Convert a Stripe epoch-seconds field into an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def to_epoch(value: datetime) -> int:
    return int(ensure_utc(value).timestamp())


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso(value: str | datetime | None) -> datetime | None:
    """Parse ISO-8601 strings from plan summary JSON, tolerating a trailing Z."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None
