"""Weather collector: daily Open-Meteo aggregates for the user's location.

Open-Meteo needs no credentials. The past seven days are fetched with
``timezone=auto``, which also tells us the IANA timezone of the saved
location; it is stored on the profile when the profile has none yet.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import httpx

from healthhub.core.storage.models import Profile, WeatherRecord
from healthhub.core.storage.repository import HealthRepository
from healthhub.core.storage.timestamps import utc_now
from healthhub.domains.health.connectors import SyncResult
from healthhub.domains.health.domain_logic.timezones import local_date, resolve_timezone

logger = logging.getLogger(__name__)

FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
DAILY_FIELDS = (
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "relative_humidity_2m_mean",
    "surface_pressure_mean",
    "weather_code",
)
HISTORY_DAYS = 7
DEFAULT_PRESSURE_HPA = 1013.0

WEATHER_CODES: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    95: "Thunderstorm",
    96: "Thunderstorm with hail",
}

RAINY_CODES = frozenset({51, 53, 55, 61, 63, 65, 80, 81, 82, 95, 96})


def is_rainy_day(record: WeatherRecord) -> bool:
    return record.weather_code in RAINY_CODES


def is_low_pressure(record: WeatherRecord) -> bool:
    return record.pressure_hpa < 1000


def is_high_humidity(record: WeatherRecord) -> bool:
    return record.humidity_avg is not None and record.humidity_avg > 80


def _at(values: list[Any] | None, index: int) -> Any:
    if not values or index >= len(values):
        return None
    return values[index]


def normalize_daily(payload: dict[str, Any], user_id: str, profile: Profile) -> list[WeatherRecord]:
    """Turn Open-Meteo's column-oriented ``daily`` block into one record per date."""
    daily = payload.get("daily") or {}
    records: list[WeatherRecord] = []
    for i, day in enumerate(daily.get("time") or []):
        code = _at(daily.get("weather_code"), i) or 0
        humidity = _at(daily.get("relative_humidity_2m_mean"), i)
        pressure = _at(daily.get("surface_pressure_mean"), i)
        records.append(WeatherRecord(
            user_id=user_id,
            date=day,
            temperature_high=_at(daily.get("temperature_2m_max"), i),
            temperature_low=_at(daily.get("temperature_2m_min"), i),
            precipitation_mm=_at(daily.get("precipitation_sum"), i) or 0.0,
            humidity_avg=round(humidity) if humidity is not None else None,
            pressure_hpa=round(pressure) if pressure else DEFAULT_PRESSURE_HPA,
            weather_code=code,
            weather_description=WEATHER_CODES.get(code, "Unknown"),
            location_city=profile.location_city,
            latitude=profile.latitude,
            longitude=profile.longitude,
        ))
    return records


class WeatherCollector:
    """Upserts the last week of daily weather for a user's saved location."""

    provider = "weather"

    def __init__(
        self,
        repository: HealthRepository,
        *,
        http_client: httpx.AsyncClient,
        default_timezone: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._http = http_client
        self._default_tz = default_timezone
        self._clock = clock

    async def sync(self, user_id: str) -> SyncResult:
        result = SyncResult(provider=self.provider)
        profile = await asyncio.to_thread(self._repo.get_profile, user_id)
        if profile is None or profile.latitude is None or profile.longitude is None:
            result.success = False
            result.error = "No saved location for this user"
            return result

        now = self._clock()
        # Open-Meteo resolves dates in the location's zone (timezone=auto)
        today = local_date(now, resolve_timezone(profile.timezone, self._default_tz))
        params = {
            "latitude": str(profile.latitude),
            "longitude": str(profile.longitude),
            "daily": ",".join(DAILY_FIELDS),
            "timezone": "auto",
            "start_date": (today - timedelta(days=HISTORY_DAYS)).isoformat(),
            "end_date": today.isoformat(),
        }
        try:
            response = await self._http.get(FORECAST_URL, params=params)
        except httpx.HTTPError as exc:
            logger.error("Open-Meteo request error: %s", exc)
            result.failed_endpoints.append("forecast")
            return result
        if response.status_code != 200:
            logger.warning("Open-Meteo fetch failed: %s", response.status_code)
            result.failed_endpoints.append("forecast")
            return result

        try:
            payload = response.json()
        except ValueError:
            result.failed_endpoints.append("forecast")
            return result

        records = normalize_daily(payload, user_id, profile)
        result.weather_days_written = await asyncio.to_thread(self._repo.upsert_weather, records)

        detected_tz = payload.get("timezone")
        if detected_tz and not profile.timezone:
            await asyncio.to_thread(
                self._repo.upsert_profile, Profile(user_id=user_id, timezone=detected_tz)
            )
            logger.info("Learned timezone %s for %s from weather location", detected_tz, user_id)

        logger.info("Weather sync for %s: %d days", user_id, result.weather_days_written)
        return result
