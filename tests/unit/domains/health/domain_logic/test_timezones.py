"""Tests for local-time bucketing helpers."""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from healthhub.domains.health.domain_logic.timezones import (
    local_date,
    local_day_bounds,
    local_hour,
    local_weekday,
    resolve_timezone,
    to_local,
)

TOKYO = ZoneInfo("Asia/Tokyo")


class TestResolveTimezone:
    def test_known_name(self):
        assert resolve_timezone("Europe/Berlin") == ZoneInfo("Europe/Berlin")

    def test_unknown_falls_back_to_default(self):
        assert resolve_timezone("Mars/Olympus", "Asia/Tokyo") == TOKYO

    def test_missing_name_uses_default(self):
        assert resolve_timezone(None, "Asia/Tokyo") == TOKYO

    def test_both_unknown_is_utc(self):
        assert resolve_timezone("nope", "also-nope") == ZoneInfo("UTC")


class TestLocalBuckets:
    def test_early_coffee_in_tokyo_is_hour_five(self):
        # 05:30 in Tokyo is 20:30 UTC on the previous day
        stored = "2026-03-17T20:30:00+00:00"
        assert local_hour(stored, TOKYO) == 5
        assert local_date(stored, TOKYO) == date(2026, 3, 18)
        assert local_weekday(stored, TOKYO) == 2

    def test_naive_value_is_local_wall_clock(self):
        naive = datetime(2026, 3, 18, 7, 15)
        assert to_local(naive, TOKYO).hour == 7
        assert to_local("2026-03-18T07:15:00", TOKYO).hour == 7

    def test_aware_datetime_converted(self):
        assert local_hour(datetime(2026, 3, 18, 15, 0, tzinfo=timezone.utc), TOKYO) == 0

    def test_day_bounds_cover_local_day(self):
        start, end = local_day_bounds(date(2026, 3, 18), TOKYO)
        assert start.astimezone(timezone.utc) == datetime(2026, 3, 17, 15, 0, tzinfo=timezone.utc)
        assert local_date(end, TOKYO) == date(2026, 3, 18)
        assert (end - start).total_seconds() < 24 * 3600
