"""Fitbit collector: today's activity, sleep, heart and food log.

The four Web API endpoints are fetched concurrently and checked
independently: a failed sleep request does not stop steps from being
written. Replacement rules per sync:

* steps, calories and resting heart rate: the user's local "today" is
  superseded for every endpoint that answered.
* sleep: Fitbit dates a session by the day it ends, and a session that
  started yesterday evening is today's sleep. Rows for the same Fitbit sleep
  date within a 36-hour lookback are replaced, so re-syncs never duplicate a
  night and never touch earlier nights.
* food log entries are inserted once per Fitbit ``logId``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any

import httpx

from healthhub.core.storage.models import FoodEntry, HealthMetric
from healthhub.core.storage.repository import HealthRepository
from healthhub.core.storage.timestamps import to_utc_iso, utc_now
from healthhub.domains.health.connectors import (
    CollectorError,
    IntegrationNeedsReconnectError,
    SyncResult,
)
from healthhub.domains.health.connectors.ingredients import tag_ingredients
from healthhub.domains.health.connectors.oauth import OAuthTokenManager
from healthhub.domains.health.domain_logic.timezones import (
    local_date,
    local_day_bounds,
    resolve_timezone,
)

logger = logging.getLogger(__name__)

FITBIT_API = "https://api.fitbit.com"
SLEEP_LOOKBACK = timedelta(hours=36)

# Fitbit mealTypeId 1..7
MEAL_TYPES = (
    "breakfast",
    "morning_snack",
    "lunch",
    "afternoon_snack",
    "dinner",
    "evening_snack",
    "anytime",
)

# Metric types each endpoint is authoritative for
_ENDPOINT_METRICS: dict[str, tuple[str, ...]] = {
    "activity": ("steps", "calories_burned"),
    "heart": ("resting_heart_rate",),
    "food": ("calories_consumed",),
}


def endpoint_urls(day: date) -> dict[str, str]:
    iso = day.isoformat()
    return {
        "activity": f"{FITBIT_API}/1/user/-/activities/date/{iso}.json",
        "sleep": f"{FITBIT_API}/1.2/user/-/sleep/date/{iso}.json",
        "heart": f"{FITBIT_API}/1/user/-/activities/heart/date/{iso}/1d.json",
        "food": f"{FITBIT_API}/1/user/-/foods/log/date/{iso}.json",
    }


# ---------------------------------------------------------------------------
# Normalization (pure)
# ---------------------------------------------------------------------------

def normalize_activity(payload: dict[str, Any], user_id: str, now: datetime) -> list[HealthMetric]:
    summary = payload.get("summary")
    if not summary:
        return []
    recorded_at = to_utc_iso(now)
    return [
        HealthMetric(
            user_id=user_id, metric_type="steps", value=summary.get("steps") or 0,
            unit="steps", source="fitbit", recorded_at=recorded_at,
        ),
        HealthMetric(
            user_id=user_id, metric_type="calories_burned", value=summary.get("caloriesOut") or 0,
            unit="kcal", source="fitbit", recorded_at=recorded_at,
        ),
    ]


def normalize_sleep(
    payload: dict[str, Any],
    user_id: str,
    day: date,
    now: datetime,
    tz: tzinfo,
) -> list[HealthMetric]:
    """One ``sleep`` metric in hours, recorded at the main session's end.

    Fitbit reports ``endTime`` as local wall-clock time without an offset.
    """
    summary = payload.get("summary") or {}
    minutes = summary.get("totalMinutesAsleep")
    if not minutes:
        return []

    sessions = payload.get("sleep") or []
    main = next((s for s in sessions if s.get("isMainSleep")), sessions[0] if sessions else None)
    end_time = main.get("endTime") if main else None
    recorded_at = to_utc_iso(end_time, tz) if end_time else to_utc_iso(now)

    return [HealthMetric(
        user_id=user_id,
        metric_type="sleep",
        value=round(minutes / 60, 1),
        unit="hours",
        source="fitbit",
        recorded_at=recorded_at,
        metadata={
            "efficiency": main.get("efficiency") if main else summary.get("efficiency"),
            "date": day.isoformat(),
        },
    )]


def normalize_heart(payload: dict[str, Any], user_id: str, now: datetime) -> list[HealthMetric]:
    days = payload.get("activities-heart") or []
    resting = (days[0].get("value") or {}).get("restingHeartRate") if days else None
    if not resting:
        return []
    return [HealthMetric(
        user_id=user_id, metric_type="resting_heart_rate", value=resting,
        unit="bpm", source="fitbit", recorded_at=to_utc_iso(now),
    )]


def normalize_food_summary(payload: dict[str, Any], user_id: str, now: datetime) -> list[HealthMetric]:
    summary = payload.get("summary")
    if not summary:
        return []
    return [HealthMetric(
        user_id=user_id,
        metric_type="calories_consumed",
        value=summary.get("calories") or 0,
        unit="kcal",
        source="fitbit",
        recorded_at=to_utc_iso(now),
        metadata={
            key: summary.get(key) or 0
            for key in ("carbs", "fat", "protein", "fiber", "sodium", "water")
        },
    )]


def _food_logged_at(log_date: str | None, now: datetime, tz: tzinfo) -> str:
    if not log_date:
        return to_utc_iso(now)
    noon = datetime.combine(date.fromisoformat(log_date), time(12), tzinfo=tz)
    return to_utc_iso(min(noon, now))


def normalize_food_entries(
    payload: dict[str, Any],
    user_id: str,
    now: datetime,
    tz: tzinfo,
) -> list[FoodEntry]:
    """Individual food log items with ingredient flags.

    Fitbit gives only the local ``logDate``, so each item is anchored at
    local noon of that date, or at ``now`` while that noon is still ahead.
    """
    entries: list[FoodEntry] = []
    for item in payload.get("foods") or []:
        logged = item.get("loggedFood") or {}
        nutrition = item.get("nutritionalValues") or {}
        name = logged.get("name") or "Unknown"
        brand = logged.get("brand") or None
        meal_id = logged.get("mealTypeId")
        meal_type = (
            MEAL_TYPES[meal_id - 1]
            if isinstance(meal_id, int) and 1 <= meal_id <= len(MEAL_TYPES)
            else "anytime"
        )
        flags = tag_ingredients(name, brand)
        log_date = item.get("logDate")

        entries.append(FoodEntry(
            user_id=user_id,
            source="fitbit",
            external_id=str(item["logId"]) if item.get("logId") else None,
            name=name,
            brand=brand,
            meal_type=meal_type,
            calories=nutrition.get("calories") or logged.get("calories") or 0,
            carbs=nutrition.get("carbs") or 0,
            fat=nutrition.get("fat") or 0,
            protein=nutrition.get("protein") or 0,
            fiber=nutrition.get("fiber") or 0,
            sodium=nutrition.get("sodium") or 0,
            sugar=nutrition.get("sugar") or 0,
            contains_dairy=flags.contains_dairy,
            contains_gluten=flags.contains_gluten,
            contains_caffeine=flags.contains_caffeine,
            logged_at=_food_logged_at(log_date, now, tz),
        ))
    return entries


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------

class FitbitCollector:
    """Syncs one user's Fitbit data for their local "today".

    Usage::

        collector = FitbitCollector(repo, token_manager, http_client=client)
        result = await collector.sync("user-1")
    """

    provider = "fitbit"

    def __init__(
        self,
        repository: HealthRepository,
        tokens: OAuthTokenManager,
        *,
        http_client: httpx.AsyncClient,
        default_timezone: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._tokens = tokens
        self._http = http_client
        self._default_tz = default_timezone
        self._clock = clock

    async def _fetch(self, name: str, url: str, token: str) -> tuple[str, httpx.Response | None]:
        try:
            response = await self._http.get(url, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as exc:
            logger.error("Fitbit %s request error: %s", name, exc)
            return name, None
        if response.status_code != 200:
            logger.warning("Fitbit %s fetch failed: %s", name, response.status_code)
        return name, response

    async def _fetch_all(self, urls: dict[str, str], token: str) -> dict[str, httpx.Response | None]:
        pairs = await asyncio.gather(*(self._fetch(name, url, token) for name, url in urls.items()))
        return dict(pairs)

    async def sync(self, user_id: str) -> SyncResult:
        """Fetch, normalize and persist today's Fitbit data.

        Never raises for provider failures; the outcome is in the result.
        """
        result = SyncResult(provider=self.provider)
        profile = await asyncio.to_thread(self._repo.get_profile, user_id)
        tz = resolve_timezone(profile.timezone if profile else None, self._default_tz)
        now = self._clock()
        today = local_date(now, tz)
        urls = endpoint_urls(today)

        try:
            token = await self._tokens.get_valid_access_token(user_id, now=now)
            responses = await self._fetch_all(urls, token)

            # Token revoked or expired early: refresh once and retry those endpoints
            unauthorized = [n for n, r in responses.items() if r is not None and r.status_code == 401]
            if unauthorized:
                integration = await self._tokens.refresh(user_id)
                retried = await self._fetch_all(
                    {n: urls[n] for n in unauthorized}, integration.access_token or ""
                )
                responses.update(retried)
        except IntegrationNeedsReconnectError as exc:
            result.success = False
            result.needs_reconnect = True
            result.error = str(exc)
            return result
        except CollectorError as exc:
            result.success = False
            result.error = str(exc)
            return result

        payloads: dict[str, dict[str, Any]] = {}
        for name, response in responses.items():
            if response is None or response.status_code != 200:
                result.failed_endpoints.append(name)
                continue
            try:
                payloads[name] = response.json()
            except ValueError:
                logger.warning("Fitbit %s returned invalid JSON", name)
                result.failed_endpoints.append(name)

        daily: list[HealthMetric] = []
        daily_types: list[str] = []
        if "activity" in payloads:
            daily += normalize_activity(payloads["activity"], user_id, now)
        if "heart" in payloads:
            daily += normalize_heart(payloads["heart"], user_id, now)
        if "food" in payloads:
            daily += normalize_food_summary(payloads["food"], user_id, now)
        for name, types in _ENDPOINT_METRICS.items():
            if name in payloads:
                daily_types.extend(types)

        if daily_types:
            day_start, day_end = local_day_bounds(today, tz)
            _, inserted = await asyncio.to_thread(
                self._repo.replace_metrics,
                user_id, self.provider, daily,
                since=day_start, until=day_end, metric_types=daily_types,
            )
            result.metrics_written += inserted

        if "sleep" in payloads:
            sleep = normalize_sleep(payloads["sleep"], user_id, today, now, tz)
            _, inserted = await asyncio.to_thread(
                self._repo.replace_metrics,
                user_id, self.provider, sleep,
                since=now - SLEEP_LOOKBACK, metric_types=["sleep"],
                metadata_date=today.isoformat(),
            )
            result.metrics_written += inserted

        if "food" in payloads:
            entries = normalize_food_entries(payloads["food"], user_id, now, tz)
            result.food_entries_written = await asyncio.to_thread(self._repo.upsert_food_entries, entries)

        await asyncio.to_thread(self._repo.mark_synced, user_id, self.provider, now)
        logger.info(
            "Fitbit sync for %s: %d metrics, %d new food entries, failed=%s",
            user_id, result.metrics_written, result.food_entries_written, result.failed_endpoints,
        )
        return result
