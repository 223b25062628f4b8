"""Tests for the Fitbit collector."""

from __future__ import annotations

import asyncio
import threading
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import httpx

from healthhub.core.storage.models import Integration, Profile
from healthhub.domains.health.domain_logic.aggregator import DataAggregator
from healthhub.domains.health.connectors.fitbit import (
    FitbitCollector,
    normalize_food_entries,
    normalize_sleep,
)
from healthhub.domains.health.connectors.oauth import (
    FITBIT_TOKEN_URL,
    OAuthClientConfig,
    OAuthTokenManager,
)

NOW = datetime(2026, 3, 18, 15, 0, tzinfo=timezone.utc)


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


ACTIVITY = {"summary": {"steps": 8421, "caloriesOut": 2310}}
SLEEP = {
    "summary": {"totalMinutesAsleep": 392},
    "sleep": [
        {"isMainSleep": False, "endTime": "2026-03-18T14:10:00.000", "efficiency": 80},
        {"isMainSleep": True, "endTime": "2026-03-18T06:45:00.000", "efficiency": 92},
    ],
}
HEART = {"activities-heart": [{"value": {"restingHeartRate": 58}}]}
FOOD = {
    "summary": {"calories": 1450, "protein": 80, "water": 1200},
    "foods": [
        {
            "logId": 9001,
            "logDate": "2026-03-18",
            "loggedFood": {"name": "Oat Milk Latte", "mealTypeId": 1, "calories": 140},
            "nutritionalValues": {"calories": 140, "fat": 5},
        },
        {
            "logId": 9002,
            "logDate": "2026-03-18",
            "loggedFood": {"name": "Grilled Chicken Salad", "mealTypeId": 3},
            "nutritionalValues": {"calories": 420, "protein": 38},
        },
    ],
}


class FitbitApi:
    """Routes Fitbit Web API paths to canned payloads or error statuses."""

    def __init__(
        self,
        statuses: dict[str, int] | None = None,
        sleep_by_date: dict[str, dict] | None = None,
    ) -> None:
        self.statuses = statuses or {}
        self.sleep_by_date = sleep_by_date
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.paths.append(path)
        for name, payload in (
            ("/activities/heart/", HEART),
            ("/activities/date/", ACTIVITY),
            ("/sleep/", SLEEP),
            ("/foods/log/", FOOD),
        ):
            if name in path:
                if name == "/sleep/" and self.sleep_by_date is not None:
                    payload = self.sleep_by_date.get(path.rsplit("/", 1)[-1].removesuffix(".json"), {})
                status = self.statuses.get(name, 200)
                return httpx.Response(status, json=payload if status == 200 else {})
        return httpx.Response(404)


class ThreadRecordingRepository:
    """Delegates to a real repository and notes the thread each call ran on."""

    def __init__(self, inner) -> None:
        self._inner = inner
        self.threads: dict[str, set[int]] = {}

    def __getattr__(self, name):
        attr = getattr(self._inner, name)
        if not callable(attr):
            return attr

        def call(*args, **kwargs):
            self.threads.setdefault(name, set()).add(threading.get_ident())
            return attr(*args, **kwargs)
        return call


def _collector(repo, api, *, tz: str | None = None, clock=None) -> FitbitCollector:
    repo.upsert_integration(Integration(
        user_id="user-1", provider="fitbit", access_token="access",
        refresh_token="refresh", token_expires_at="2099-01-01T00:00:00+00:00",
    ))
    if tz:
        repo.upsert_profile(Profile(user_id="user-1", timezone=tz))
    client = httpx.AsyncClient(transport=httpx.MockTransport(api))
    tokens = OAuthTokenManager(
        OAuthClientConfig("fitbit", FITBIT_TOKEN_URL, "id", "secret", basic_auth=True),
        repo,
        http_client=client,
    )
    return FitbitCollector(repo, tokens, http_client=client, clock=clock or (lambda: NOW))


class TestNormalization:
    def test_sleep_uses_main_session_end(self):
        [metric] = normalize_sleep(SLEEP, "user-1", date(2026, 3, 18), NOW, timezone.utc)
        assert metric.value == 6.5
        assert metric.recorded_at == "2026-03-18T06:45:00+00:00"
        assert metric.metadata == {"efficiency": 92, "date": "2026-03-18"}

    def test_no_sleep_minutes(self):
        assert normalize_sleep({"summary": {}}, "user-1", date(2026, 3, 18), NOW, timezone.utc) == []

    def test_food_entries(self):
        latte, salad = normalize_food_entries(FOOD, "user-1", NOW, timezone.utc)
        assert latte.external_id == "9001"
        assert latte.meal_type == "breakfast"
        assert latte.contains_dairy and latte.contains_caffeine
        assert latte.logged_at == "2026-03-18T12:00:00+00:00"
        assert salad.meal_type == "lunch"
        assert not (salad.contains_dairy or salad.contains_gluten or salad.contains_caffeine)

    def test_food_anchored_at_local_noon(self):
        [latte, _] = normalize_food_entries(FOOD, "user-1", NOW, ZoneInfo("Europe/Berlin"))
        assert latte.logged_at == "2026-03-18T11:00:00+00:00"

    def test_food_local_noon_on_previous_utc_day(self):
        # Auckland is on NZDT (+13) in March, so local noon is the previous UTC day
        [latte, _] = normalize_food_entries(FOOD, "user-1", NOW, ZoneInfo("Pacific/Auckland"))
        assert latte.logged_at == "2026-03-17T23:00:00+00:00"

    def test_food_never_stamped_in_the_future(self):
        morning = datetime(2026, 3, 18, 8, 30, tzinfo=timezone.utc)
        [latte, _] = normalize_food_entries(FOOD, "user-1", morning, ZoneInfo("Europe/Berlin"))
        assert latte.logged_at == "2026-03-18T08:30:00+00:00"


class TestSync:
    def test_full_sync(self, health_repository):
        api = FitbitApi()
        result = _run(_collector(health_repository, api).sync("user-1"))

        assert result.status == "success"
        assert result.metrics_written == 5
        assert result.food_entries_written == 2
        types = sorted(m.metric_type for m in health_repository.get_metrics("user-1"))
        assert types == [
            "calories_burned", "calories_consumed", "resting_heart_rate", "sleep", "steps",
        ]
        assert any("/1.2/user/-/sleep/date/2026-03-18.json" in p for p in api.paths)
        assert health_repository.get_integration("user-1", "fitbit").last_sync_at is not None

    def test_resync_never_duplicates_sleep_or_food(self, health_repository):
        collector = _collector(health_repository, FitbitApi())
        _run(collector.sync("user-1"))
        second = _run(collector.sync("user-1"))

        assert second.food_entries_written == 0
        sleep = health_repository.get_metrics("user-1", metric_type="sleep")
        assert len(sleep) == 1
        assert len(health_repository.get_metrics("user-1", metric_type="steps")) == 1
        assert len(health_repository.get_food_entries("user-1")) == 2

    def test_failed_endpoint_is_skipped(self, health_repository):
        collector = _collector(health_repository, FitbitApi({"/sleep/": 500}))
        result = _run(collector.sync("user-1"))

        assert result.status == "degraded"
        assert result.failed_endpoints == ["sleep"]
        assert health_repository.get_metrics("user-1", metric_type="sleep") == []
        assert len(health_repository.get_metrics("user-1", metric_type="steps")) == 1
        assert health_repository.get_integration("user-1", "fitbit").is_connected

    def test_local_date_used_for_endpoints(self, health_repository):
        # 15:00 UTC is already the 19th in Tokyo
        api = FitbitApi()
        _run(_collector(health_repository, api, tz="Asia/Tokyo").sync("user-1"))
        assert any(p.endswith("/activities/date/2026-03-19.json") for p in api.paths)

    def test_not_connected(self, health_repository):
        client = httpx.AsyncClient(transport=httpx.MockTransport(FitbitApi()))
        tokens = OAuthTokenManager(
            OAuthClientConfig("fitbit", FITBIT_TOKEN_URL, "id", "secret", basic_auth=True),
            health_repository,
            http_client=client,
        )
        collector = FitbitCollector(health_repository, tokens, http_client=client, clock=lambda: NOW)
        result = _run(collector.sync("user-1"))
        assert result.status == "failure"
        assert "not connected" in result.error

    def test_unauthorized_with_failed_refresh_needs_reconnect(self, health_repository):
        def api(request: httpx.Request) -> httpx.Response:
            if str(request.url) == FITBIT_TOKEN_URL:
                return httpx.Response(400, json={"errors": []})
            return httpx.Response(401, json={})

        result = _run(_collector(health_repository, api).sync("user-1"))
        assert result.status == "needs_reconnect"
        assert health_repository.get_integration("user-1", "fitbit").is_connected is False

    def test_store_calls_run_off_the_event_loop(self, health_repository):
        recording = ThreadRecordingRepository(health_repository)
        collector = _collector(recording, FitbitApi())

        async def sync() -> int:
            await collector.sync("user-1")
            return threading.get_ident()

        loop_thread = _run(sync())
        names = ("get_profile", "get_integration", "replace_metrics", "upsert_food_entries", "mark_synced")
        for name in names:
            assert recording.threads[name], name
            assert loop_thread not in recording.threads[name], name

    def test_morning_food_visible_to_analysis(self, health_repository, clock):
        # 08:30 UTC is 09:30 in Berlin, before UTC noon
        clock.now = datetime(2026, 3, 18, 8, 30, tzinfo=timezone.utc)
        _run(_collector(health_repository, FitbitApi(), tz="Europe/Berlin", clock=clock).sync("user-1"))

        ctx = _run(DataAggregator(health_repository, clock=clock).aggregate("user-1"))
        assert sorted(f.name for f in ctx.foods) == ["Grilled Chicken Salad", "Oat Milk Latte"]
        assert all(f.logged_at <= clock.now.isoformat() for f in ctx.foods)


def _night(ends: str, minutes: int) -> dict:
    return {
        "summary": {"totalMinutesAsleep": minutes},
        "sleep": [{"isMainSleep": True, "endTime": ends, "efficiency": 90}],
    }


class TestSleepAcrossTheDay:
    def test_one_row_per_night_as_clock_advances(self, health_repository, clock):
        nights = {"2026-03-18": _night("2026-03-18T06:45:00.000", 392)}
        api = FitbitApi(sleep_by_date=nights)
        collector = _collector(health_repository, api, clock=clock)

        clock.now = datetime(2026, 3, 18, 8, 0, tzinfo=timezone.utc)
        _run(collector.sync("user-1"))
        [morning] = health_repository.get_metrics("user-1", metric_type="sleep")
        assert morning.value == 6.5

        # An afternoon nap extends the same Fitbit night
        nights["2026-03-18"] = _night("2026-03-18T06:45:00.000", 452)
        clock.advance(hours=14)
        _run(collector.sync("user-1"))
        [evening] = health_repository.get_metrics("user-1", metric_type="sleep")
        assert evening.value == 7.5
        assert evening.metadata["date"] == "2026-03-18"

        nights["2026-03-19"] = _night("2026-03-19T07:00:00.000", 420)
        clock.advance(hours=10)
        _run(collector.sync("user-1"))
        rows = health_repository.get_metrics("user-1", metric_type="sleep")
        by_night = {m.metadata["date"]: m for m in rows}
        assert len(rows) == 2
        assert by_night["2026-03-19"].value == 7.0
        assert by_night["2026-03-18"].value == 7.5
        assert by_night["2026-03-18"].recorded_at == "2026-03-18T06:45:00+00:00"
        assert any(p.endswith("/sleep/date/2026-03-19.json") for p in api.paths)

    def test_empty_night_leaves_previous_nights(self, health_repository, clock):
        nights = {"2026-03-18": _night("2026-03-18T06:45:00.000", 392)}
        collector = _collector(health_repository, FitbitApi(sleep_by_date=nights), clock=clock)
        clock.now = datetime(2026, 3, 18, 8, 0, tzinfo=timezone.utc)
        _run(collector.sync("user-1"))

        # Next morning, before the watch has synced the night
        clock.advance(days=1)
        _run(collector.sync("user-1"))
        [kept] = health_repository.get_metrics("user-1", metric_type="sleep")
        assert kept.metadata["date"] == "2026-03-18"
