"""Local-time bucketing for hour-of-day and day-based analyses.

Stored timestamps are UTC. Every hour or day bucket is taken from the wall
clock in the user's IANA timezone, so a 05:30 coffee in Tokyo is hour 5,
not hour 20 of the previous UTC day. Naive timestamps are read as local
wall-clock time in that timezone.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from healthhub.core.storage.timestamps import parse_timestamp

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def resolve_timezone(name: str | None, default: str = "UTC") -> tzinfo:
    """Return the ZoneInfo for ``name``, falling back to ``default`` if unknown."""
    for candidate in (name, default):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r; falling back", candidate)
    return ZoneInfo("UTC")


def to_local(value: datetime | str, tz: tzinfo) -> datetime:
    dt = parse_timestamp(value, tz) if isinstance(value, str) else value
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def local_hour(value: datetime | str, tz: tzinfo) -> int:
    return to_local(value, tz).hour


def local_date(value: datetime | str, tz: tzinfo) -> date:
    return to_local(value, tz).date()


def local_weekday(value: datetime | str, tz: tzinfo) -> int:
    """Monday is 0."""
    return to_local(value, tz).weekday()


def local_day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Aware [start, end] datetimes covering one local calendar day."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz) - timedelta(microseconds=1)
    return start, end
