"""Data aggregator: one user's window of stored data as an AnalysisContext.

The seven store queries are independent and run concurrently in worker
threads. Every source comes back as a list (possibly empty), newest first,
so analyzers never see None.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo

from healthhub.core.storage.models import (
    CalendarEvent,
    CycleEntry,
    FoodEntry,
    HealthMetric,
    ManualLog,
    MedicationLog,
    WeatherRecord,
)
from healthhub.core.storage.repository import HealthRepository
from healthhub.core.storage.timestamps import utc_now
from healthhub.domains.health.domain_logic.timezones import local_date, resolve_timezone

logger = logging.getLogger(__name__)

# Calendar look-ahead for "tomorrow" and "week ahead" predictions
EVENT_HORIZON = timedelta(days=14)
# Older period starts anchor phase tagging inside the window
CYCLE_LOOKBACK = timedelta(days=90)


@dataclass
class AnalysisContext:
    """Everything the analyzers may read for one user and one window.

    Ephemeral: rebuilt on every run, never persisted.
    """

    user_id: str
    timezone: tzinfo
    timezone_name: str
    window_start: datetime
    now: datetime
    metrics: list[HealthMetric] = field(default_factory=list)
    logs: list[ManualLog] = field(default_factory=list)
    foods: list[FoodEntry] = field(default_factory=list)
    events: list[CalendarEvent] = field(default_factory=list)
    weather: list[WeatherRecord] = field(default_factory=list)
    medications: list[MedicationLog] = field(default_factory=list)
    cycle_entries: list[CycleEntry] = field(default_factory=list)

    def metrics_of(self, metric_type: str) -> list[HealthMetric]:
        return [m for m in self.metrics if m.metric_type == metric_type]

    def logs_of(self, log_type: str) -> list[ManualLog]:
        return [log for log in self.logs if log.log_type == log_type]

    @property
    def is_empty(self) -> bool:
        return not (
            self.metrics or self.logs or self.foods or self.events
            or self.weather or self.medications or self.cycle_entries
        )


class DataAggregator:
    """Builds an :class:`AnalysisContext` from the store.

    Usage::

        aggregator = DataAggregator(repo, default_timezone="Europe/Berlin")
        ctx = await aggregator.aggregate("user-1", window_days=30)
    """

    def __init__(
        self,
        repository: HealthRepository,
        *,
        default_timezone: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._default_tz = default_timezone
        self._clock = clock

    async def aggregate(self, user_id: str, window_days: int = 30) -> AnalysisContext:
        """Fetch all sources for ``user_id`` over the last ``window_days``.

        Calendar events also include the upcoming two weeks.
        """
        now = self._clock()
        since = now - timedelta(days=window_days)

        profile = await asyncio.to_thread(self._repo.get_profile, user_id)
        tz_name = (profile.timezone if profile else None) or self._default_tz
        tz = resolve_timezone(tz_name, self._default_tz)
        since_date = local_date(since, tz).isoformat()
        cycle_since = local_date(since - CYCLE_LOOKBACK, tz).isoformat()
        until_date = local_date(now, tz).isoformat()

        metrics, logs, foods, events, weather, medications, cycle = await asyncio.gather(
            asyncio.to_thread(self._repo.get_metrics, user_id, since=since, until=now),
            asyncio.to_thread(self._repo.get_manual_logs, user_id, since=since, until=now),
            asyncio.to_thread(self._repo.get_food_entries, user_id, since=since, until=now),
            asyncio.to_thread(
                self._repo.get_calendar_events, user_id, since=since, until=now + EVENT_HORIZON
            ),
            asyncio.to_thread(
                self._repo.get_weather, user_id, since_date=since_date, until_date=until_date
            ),
            asyncio.to_thread(self._repo.get_medication_logs, user_id, since=since, until=now),
            asyncio.to_thread(self._repo.get_cycle_entries, user_id, since_date=cycle_since),
        )

        ctx = AnalysisContext(
            user_id=user_id,
            timezone=tz,
            timezone_name=str(tz),
            window_start=since,
            now=now,
            metrics=metrics or [],
            logs=logs or [],
            foods=foods or [],
            events=events or [],
            weather=weather or [],
            medications=medications or [],
            cycle_entries=cycle or [],
        )
        logger.debug(
            "Aggregated %s: %d metrics, %d logs, %d foods, %d events, %d weather, %d meds, %d cycle",
            user_id, len(ctx.metrics), len(ctx.logs), len(ctx.foods), len(ctx.events),
            len(ctx.weather), len(ctx.medications), len(ctx.cycle_entries),
        )
        return ctx
