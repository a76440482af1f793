"""UTC helpers shared by the reward services."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utc_day(value: datetime) -> date:
    """Calendar day of a timestamp, in UTC."""
    return as_utc(value).astimezone(timezone.utc).date()
