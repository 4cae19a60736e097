"""Timestamp helpers shared by the repository, pricing and reporting code."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Render an aware datetime as UTC with millisecond precision and a ``Z``."""

    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(ts: str | None, tz: str = "UTC") -> datetime | None:
    """Parse an ISO-8601 timestamp string.

    Naive values get ``tz`` attached. Returns ``None`` for empty or
    unparseable input.
    """
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt


def is_date_only(value: str) -> bool:
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


def parse_boundary(value: str | None) -> datetime | None:
    """Parse an offer boundary.

    A bare ``YYYY-MM-DD`` means midnight UTC at the start of that day, so an
    offer ending on the 15th is already expired at noon on the 15th. Full
    timestamps are taken as given.
    """
    if not value:
        return None
    if is_date_only(value):
        day = date.fromisoformat(value.strip())
        return datetime.combine(day, time.min, tzinfo=timezone.utc)
    return parse_iso(value)


def local_date(dt: datetime, tz: str) -> date:
    return dt.astimezone(ZoneInfo(tz)).date()
