"""Apple Health collector: daily metrics from an exported Health XML.

Users export via iOS Health app -> Share -> Export Health Data. Each sync
reads the last ``lookback_hours`` of samples and replaces the
``apple_health`` rows for every local day it produced metrics for.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from healthhub.core.storage.models import Integration
from healthhub.core.storage.repository import HealthRepository
from healthhub.core.storage.timestamps import to_utc_iso, utc_now
from healthhub.domains.health.connectors import SyncResult
from healthhub.domains.health.connectors.apple_health_parser import (
    AppleHealthParseError,
    daily_metrics,
    parse_apple_health_export,
)
from healthhub.domains.health.domain_logic.timezones import local_day_bounds, resolve_timezone

logger = logging.getLogger(__name__)


class AppleHealthCollector:
    """Syncs metrics from an Apple Health ``export.xml``.

    Usage::

        collector = AppleHealthCollector(repo, "/path/to/export.xml")
        result = await collector.sync("user-1")
    """

    provider = "apple_health"

    def __init__(
        self,
        repository: HealthRepository,
        export_path: str,
        *,
        lookback_hours: int = 24,
        default_timezone: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._export_path = export_path
        self._lookback = timedelta(hours=lookback_hours)
        self._default_tz = default_timezone
        self._clock = clock

    def is_configured(self) -> bool:
        return bool(self._export_path) and Path(self._export_path).exists()

    async def sync(self, user_id: str) -> SyncResult:
        result = SyncResult(provider=self.provider)
        if not self.is_configured():
            result.success = False
            result.error = "Apple Health export path not configured or missing"
            return result

        profile = await asyncio.to_thread(self._repo.get_profile, user_id)
        tz = resolve_timezone(profile.timezone if profile else None, self._default_tz)
        now = self._clock()

        try:
            samples = await asyncio.to_thread(
                parse_apple_health_export, self._export_path, now - self._lookback
            )
        except AppleHealthParseError as exc:
            logger.error("Apple Health parse failed: %s", exc)
            result.success = False
            result.error = str(exc)
            return result

        for day, metrics in daily_metrics(samples, user_id, tz).items():
            day_start, day_end = local_day_bounds(day, tz)
            _, inserted = await asyncio.to_thread(
                self._repo.replace_metrics,
                user_id,
                self.provider,
                metrics,
                since=day_start,
                until=day_end,
                metric_types=sorted({m.metric_type for m in metrics}),
            )
            result.metrics_written += inserted

        existing = await asyncio.to_thread(self._repo.get_integration, user_id, self.provider)
        await asyncio.to_thread(self._repo.upsert_integration, Integration(
            user_id=user_id,
            provider=self.provider,
            is_connected=True,
            last_sync_at=to_utc_iso(now),
            connected_at=existing.connected_at if existing else to_utc_iso(now),
        ))
        logger.info("Apple Health sync for %s: %d metrics", user_id, result.metrics_written)
        return result
