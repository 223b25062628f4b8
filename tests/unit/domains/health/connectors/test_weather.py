"""Tests for the Open-Meteo weather collector."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx

from healthhub.core.storage.models import Profile, WeatherRecord
from healthhub.domains.health.connectors.weather import (
    WeatherCollector,
    is_high_humidity,
    is_low_pressure,
    is_rainy_day,
    normalize_daily,
)

NOW = datetime(2026, 3, 18, 15, 0, tzinfo=timezone.utc)

PAYLOAD = {
    "timezone": "Europe/Berlin",
    "daily": {
        "time": ["2026-03-17", "2026-03-18"],
        "temperature_2m_max": [11.2, 9.8],
        "temperature_2m_min": [3.1, 4.0],
        "precipitation_sum": [0.0, None],
        "relative_humidity_2m_mean": [71.6, 88.2],
        "surface_pressure_mean": [1012.4, None],
        "weather_code": [2, 63],
    },
}


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _collector(repo, handler, **kwargs) -> WeatherCollector:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WeatherCollector(repo, http_client=client, clock=lambda: NOW, **kwargs)


def _berlin(repo, tz: str | None = None) -> None:
    repo.upsert_profile(Profile(
        user_id="user-1", timezone=tz, location_city="Berlin", latitude=52.52, longitude=13.41,
    ))


class TestNormalizeDaily:
    def test_rounding_and_defaults(self):
        profile = Profile(user_id="user-1", location_city="Berlin", latitude=52.52, longitude=13.41)
        dry, wet = normalize_daily(PAYLOAD, "user-1", profile)

        assert dry.date == "2026-03-17"
        assert dry.humidity_avg == 72
        assert dry.pressure_hpa == 1012
        assert dry.weather_description == "Partly cloudy"
        assert dry.location_city == "Berlin"

        assert wet.precipitation_mm == 0.0
        assert wet.pressure_hpa == 1013.0
        assert wet.weather_description == "Moderate rain"

    def test_unknown_code(self):
        payload = {"daily": {"time": ["2026-03-18"], "weather_code": [7]}}
        [record] = normalize_daily(payload, "user-1", Profile(user_id="user-1"))
        assert record.weather_description == "Unknown"
        assert record.humidity_avg is None

    def test_missing_daily_block(self):
        assert normalize_daily({}, "user-1", Profile(user_id="user-1")) == []


class TestPredicates:
    def test_rainy(self):
        assert is_rainy_day(WeatherRecord(date="2026-03-18", weather_code=61))
        assert not is_rainy_day(WeatherRecord(date="2026-03-18", weather_code=3))

    def test_low_pressure_threshold(self):
        assert is_low_pressure(WeatherRecord(date="2026-03-18", pressure_hpa=998))
        assert not is_low_pressure(WeatherRecord(date="2026-03-18", pressure_hpa=1000))

    def test_high_humidity_threshold(self):
        assert is_high_humidity(WeatherRecord(date="2026-03-18", humidity_avg=81))
        assert not is_high_humidity(WeatherRecord(date="2026-03-18", humidity_avg=80))
        assert not is_high_humidity(WeatherRecord(date="2026-03-18"))


class TestSync:
    def test_requests_last_week_with_auto_timezone(self, health_repository):
        _berlin(health_repository)
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PAYLOAD)

        result = _run(_collector(health_repository, handler).sync("user-1"))

        assert result.status == "success"
        assert result.weather_days_written == 2
        params = seen[0].url.params
        assert params["latitude"] == "52.52"
        assert params["timezone"] == "auto"
        assert params["start_date"] == "2026-03-11"
        assert params["end_date"] == "2026-03-18"
        assert "surface_pressure_mean" in params["daily"]

        days = health_repository.get_weather("user-1")
        assert [d.date for d in days] == ["2026-03-18", "2026-03-17"]

    def test_date_range_follows_profile_timezone(self, health_repository):
        # 15:00 UTC is already 04:00 on the 19th in Auckland
        _berlin(health_repository, tz="Pacific/Auckland")
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PAYLOAD)

        _run(_collector(health_repository, handler).sync("user-1"))
        params = seen[0].url.params
        assert params["start_date"] == "2026-03-12"
        assert params["end_date"] == "2026-03-19"

    def test_date_range_falls_back_to_default_timezone(self, health_repository):
        _berlin(health_repository)
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PAYLOAD)

        collector = _collector(health_repository, handler, default_timezone="Pacific/Auckland")
        _run(collector.sync("user-1"))
        assert seen[0].url.params["end_date"] == "2026-03-19"

    def test_learns_timezone_when_profile_has_none(self, health_repository):
        _berlin(health_repository)
        _run(_collector(health_repository, lambda r: httpx.Response(200, json=PAYLOAD)).sync("user-1"))
        assert health_repository.get_profile("user-1").timezone == "Europe/Berlin"

    def test_keeps_existing_timezone(self, health_repository):
        _berlin(health_repository, tz="Europe/London")
        _run(_collector(health_repository, lambda r: httpx.Response(200, json=PAYLOAD)).sync("user-1"))
        assert health_repository.get_profile("user-1").timezone == "Europe/London"

    def test_resync_overwrites_days(self, health_repository):
        _berlin(health_repository)
        collector = _collector(health_repository, lambda r: httpx.Response(200, json=PAYLOAD))
        _run(collector.sync("user-1"))
        _run(collector.sync("user-1"))
        assert len(health_repository.get_weather("user-1")) == 2

    def test_no_location(self, health_repository):
        health_repository.upsert_profile(Profile(user_id="user-1", timezone="UTC"))
        result = _run(_collector(health_repository, lambda r: httpx.Response(200, json=PAYLOAD)).sync("user-1"))
        assert result.status == "failure"
        assert result.error == "No saved location for this user"

    def test_upstream_error_is_degraded(self, health_repository):
        _berlin(health_repository)
        result = _run(_collector(health_repository, lambda r: httpx.Response(500)).sync("user-1"))
        assert result.status == "degraded"
        assert result.failed_endpoints == ["forecast"]
        assert health_repository.get_weather("user-1") == []
