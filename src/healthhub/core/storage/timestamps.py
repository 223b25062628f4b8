"""Canonical timestamp form for the shared store.

Every stored timestamp is a UTC ISO 8601 string with an explicit ``+00:00``
offset and second precision, so lexicographic order in SQL matches time order.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str, default_tz: tzinfo = timezone.utc) -> datetime:
    """Parse an ISO 8601 timestamp into an aware datetime.

    Accepts a trailing ``Z`` and naive values; naive values are interpreted
    in ``default_tz``.

    Raises:
        ValueError: If the string is not ISO 8601.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz)
    return dt


def to_utc_iso(value: datetime | str, default_tz: tzinfo = timezone.utc) -> str:
    """Normalize a datetime or ISO string to the stored UTC form."""
    dt = parse_timestamp(value, default_tz) if isinstance(value, str) else value
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")
