"""Google Calendar collector: events around today for sleep/stress analysis.

Pulls the primary calendar from 30 days back to 14 days ahead, drops
events this app created itself (titles prefixed ``[auto]``), classifies the
rest by keyword, and replaces the stored events for that range.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, tzinfo
from typing import Any

import httpx

from healthhub.core.storage.models import CalendarEvent
from healthhub.core.storage.repository import HealthRepository
from healthhub.core.storage.timestamps import to_utc_iso, utc_now
from healthhub.domains.health.connectors import (
    CollectorError,
    IntegrationNeedsReconnectError,
    SyncResult,
)
from healthhub.domains.health.connectors.oauth import OAuthTokenManager
from healthhub.domains.health.domain_logic.timezones import resolve_timezone

logger = logging.getLogger(__name__)

EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
AUTO_PREFIX = "[auto]"

# Checked in order; first category with a matching keyword wins
EVENT_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("work", ("shift", "work", "meeting")),
    ("exercise", ("gym", "workout", "exercise")),
    ("health", ("doctor", "appointment", "dentist")),
    ("social", ("birthday", "party", "dinner")),
)


def classify_event(title: str) -> str:
    lowered = title.lower()
    for event_type, keywords in EVENT_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return event_type
    return "other"


def normalize_events(items: list[dict[str, Any]], user_id: str, tz: tzinfo) -> list[CalendarEvent]:
    """Map Google event resources to CalendarEvent rows.

    All-day events carry ``start.date`` only; they are anchored at local
    midnight of that date.
    """
    events: list[CalendarEvent] = []
    for item in items:
        title = item.get("summary") or "(untitled)"
        if title.startswith(AUTO_PREFIX):
            continue
        start = item.get("start") or {}
        end = item.get("end") or {}
        start_raw = start.get("dateTime") or start.get("date")
        if not start_raw:
            continue
        end_raw = end.get("dateTime") or end.get("date")
        events.append(CalendarEvent(
            user_id=user_id,
            google_event_id=item.get("id"),
            title=title,
            description=item.get("description"),
            location=item.get("location"),
            start_time=to_utc_iso(start_raw, tz),
            end_time=to_utc_iso(end_raw, tz) if end_raw else None,
            event_type=classify_event(title),
            is_all_day="dateTime" not in start,
        ))
    return events


class GoogleCalendarCollector:
    """Syncs one user's primary Google Calendar.

    Usage::

        collector = GoogleCalendarCollector(repo, token_manager, http_client=client)
        result = await collector.sync("user-1")
    """

    provider = "google_calendar"

    def __init__(
        self,
        repository: HealthRepository,
        tokens: OAuthTokenManager,
        *,
        http_client: httpx.AsyncClient,
        days_back: int = 30,
        days_forward: int = 14,
        default_timezone: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._tokens = tokens
        self._http = http_client
        self._days_back = days_back
        self._days_forward = days_forward
        self._default_tz = default_timezone
        self._clock = clock

    async def _list_events(self, token: str, time_min: datetime, time_max: datetime) -> httpx.Response:
        return await self._http.get(
            EVENTS_URL,
            params={
                "timeMin": time_min.isoformat(),
                "timeMax": time_max.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
                "maxResults": "250",
            },
            headers={"Authorization": f"Bearer {token}"},
        )

    async def sync(self, user_id: str) -> SyncResult:
        result = SyncResult(provider=self.provider)
        profile = await asyncio.to_thread(self._repo.get_profile, user_id)
        tz = resolve_timezone(profile.timezone if profile else None, self._default_tz)
        now = self._clock()
        time_min = now - timedelta(days=self._days_back)
        time_max = now + timedelta(days=self._days_forward)

        try:
            token = await self._tokens.get_valid_access_token(user_id, now=now)
            response = await self._list_events(token, time_min, time_max)
            if response.status_code == 401:
                integration = await self._tokens.refresh(user_id)
                response = await self._list_events(integration.access_token or "", time_min, time_max)
        except IntegrationNeedsReconnectError as exc:
            result.success = False
            result.needs_reconnect = True
            result.error = str(exc)
            return result
        except CollectorError as exc:
            result.success = False
            result.error = str(exc)
            return result
        except httpx.HTTPError as exc:
            logger.error("Google Calendar request error: %s", exc)
            result.failed_endpoints.append("events")
            return result

        if response.status_code != 200:
            logger.warning("Google Calendar fetch failed: %s", response.status_code)
            result.failed_endpoints.append("events")
            return result
        try:
            items = response.json().get("items") or []
        except ValueError:
            result.failed_endpoints.append("events")
            return result

        events = normalize_events(items, user_id, tz)
        result.events_written = await asyncio.to_thread(
            self._repo.replace_calendar_events, user_id, events, since=time_min, until=time_max
        )
        await asyncio.to_thread(self._repo.mark_synced, user_id, self.provider, now)
        logger.info("Google Calendar sync for %s: %d events", user_id, result.events_written)
        return result
