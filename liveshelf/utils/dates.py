"""Timestamp helpers.

Timestamps are stored as naive UTC datetimes so SQLite and Postgres compare
them the same way.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from liveshelf.models.metadata import TimeFilter

TIME_FILTER_WINDOWS: dict[TimeFilter, timedelta] = {
    TimeFilter.LAST_24H: timedelta(hours=24),
    TimeFilter.LAST_7D: timedelta(days=7),
}


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def time_filter_since(time_filter: TimeFilter, now: datetime | None = None) -> datetime | None:
    """Return the lower bound for a time filter, or None for ``all``."""
    window = TIME_FILTER_WINDOWS.get(time_filter)
    if window is None:
        return None
    return (now or utcnow()) - window
