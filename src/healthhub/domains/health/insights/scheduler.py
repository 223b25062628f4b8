"""Insight cache / scheduler for heuristic analysis runs.

A user's last heuristic batch is served until it is older than their chosen
refresh frequency, or older than the hard maximum age regardless of
frequency. A due run aggregates, analyzes and persists a new batch, even an
empty one, so the next call inside the window does not recompute.

At most one run per user is in flight: concurrent callers wait on a per-user
lock and, once they hold it, re-check freshness and serve the batch the
first caller just persisted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta

from healthhub.core.audit.logger import AuditLogger
from healthhub.core.storage.models import AnalyzedInsight, InsightBatch, Profile
from healthhub.core.storage.repository import HealthRepository
from healthhub.core.storage.timestamps import parse_timestamp, utc_now
from healthhub.domains.health.domain_logic.aggregator import DataAggregator
from healthhub.domains.health.domain_logic.engine import AnalysisEngine

logger = logging.getLogger(__name__)

FREQUENCIES: dict[str, timedelta] = {
    "5min": timedelta(minutes=5),
    "15min": timedelta(minutes=15),
    "30min": timedelta(minutes=30),
    "1hr": timedelta(hours=1),
    "2hr": timedelta(hours=2),
}
DEFAULT_FREQUENCY = "30min"
MAX_AGE = timedelta(hours=24)


def should_refresh(
    last_run_at: datetime | str | None,
    frequency: str,
    now: datetime | None = None,
    *,
    max_age: timedelta = MAX_AGE,
) -> bool:
    """True when a new analysis run is due.

    Args:
        last_run_at: When the last batch was persisted; None means never.
        frequency: One of :data:`FREQUENCIES`; unknown values use the default.
        now: Reference time; defaults to the current UTC time.
        max_age: Hard ceiling applied whatever the frequency.
    """
    if last_run_at is None:
        return True
    now = now or utc_now()
    last = parse_timestamp(last_run_at) if isinstance(last_run_at, str) else last_run_at
    age = now - last
    if age >= max_age:
        return True

    interval = FREQUENCIES.get(frequency)
    if interval is None:
        logger.warning("Unknown analysis frequency %r; using %s", frequency, DEFAULT_FREQUENCY)
        interval = FREQUENCIES[DEFAULT_FREQUENCY]
    return age >= interval


class InsightScheduler:
    """Serves cached heuristic insights and runs analysis when due.

    Usage::

        scheduler = InsightScheduler(repo, DataAggregator(repo), AnalysisEngine())
        insights = await scheduler.get_or_refresh("user-1")
    """

    def __init__(
        self,
        repository: HealthRepository,
        aggregator: DataAggregator,
        engine: AnalysisEngine,
        *,
        audit_logger: AuditLogger | None = None,
        default_frequency: str = DEFAULT_FREQUENCY,
        max_age_hours: int = 24,
        window_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._aggregator = aggregator
        self._engine = engine
        self._audit = audit_logger
        self._default_frequency = default_frequency
        self._max_age = timedelta(hours=max_age_hours)
        self._window_days = window_days
        self._clock = clock
        # Per-user lock plus the number of callers holding or awaiting it
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    def frequency_for(self, user_id: str) -> str:
        profile = self._repo.get_profile(user_id)
        if profile and profile.analysis_frequency in FREQUENCIES:
            return profile.analysis_frequency
        return self._default_frequency

    def set_frequency(self, user_id: str, frequency: str) -> None:
        """Persist a user's refresh frequency.

        Raises:
            ValueError: If ``frequency`` is not one of :data:`FREQUENCIES`.
        """
        if frequency not in FREQUENCIES:
            raise ValueError(
                f"Unknown frequency {frequency!r}; expected one of {', '.join(FREQUENCIES)}"
            )
        self._repo.upsert_profile(Profile(user_id=user_id, analysis_frequency=frequency))

    def is_due(self, user_id: str) -> bool:
        run = self._repo.get_analysis_run(user_id, "heuristic")
        return should_refresh(
            run.last_run_at if run else None,
            self.frequency_for(user_id),
            self._clock(),
            max_age=self._max_age,
        )

    async def get_batch(self, user_id: str, *, force: bool = False) -> InsightBatch:
        """Return the cached batch, or run analysis and return the new one."""
        lock = self._acquire_slot(user_id)
        try:
            async with lock:
                if not force and not self.is_due(user_id):
                    cached = self._repo.get_latest_insight_batch(user_id, "heuristic")
                    if cached is not None:
                        logger.debug(
                            "Serving cached insight batch %s for %s", cached.batch_id, user_id
                        )
                        return cached
                return await self._run(user_id)
        finally:
            self._release_slot(user_id)

    def _acquire_slot(self, user_id: str) -> asyncio.Lock:
        lock, users = self._locks.get(user_id, (None, 0))
        lock = lock or asyncio.Lock()
        self._locks[user_id] = (lock, users + 1)
        return lock

    def _release_slot(self, user_id: str) -> None:
        lock, users = self._locks[user_id]
        if users <= 1:
            del self._locks[user_id]
        else:
            self._locks[user_id] = (lock, users - 1)

    @property
    def active_users(self) -> int:
        """Users with an analysis run in flight or queued."""
        return len(self._locks)

    async def get_or_refresh(self, user_id: str) -> list[AnalyzedInsight]:
        return (await self.get_batch(user_id)).insights

    async def _run(self, user_id: str) -> InsightBatch:
        start = time.monotonic()
        ctx = await self._aggregator.aggregate(user_id, self._window_days)
        report = self._engine.run(ctx)
        batch = await asyncio.to_thread(
            self._repo.save_insight_batch,
            user_id,
            "heuristic",
            report.insights,
            run_at=self._clock(),
        )
        duration_ms = round((time.monotonic() - start) * 1000, 1)
        if self._audit:
            self._audit.log_analysis_run(
                user_id,
                batch_id=batch.batch_id,
                insight_count=len(batch.insights),
                duration_ms=duration_ms,
                failed_passes=report.failed_passes,
            )
        logger.info(
            "Analysis run for %s: %d insights in %.1fms", user_id, len(batch.insights), duration_ms
        )
        return batch
