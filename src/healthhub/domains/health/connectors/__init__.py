"""Source collectors: fetch one provider's data and write it to the shared store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


class CollectorError(Exception):
    """Raised when a collector cannot run at all (missing config or integration)."""


class IntegrationNeedsReconnectError(CollectorError):
    """The provider rejected our credentials and refreshing failed.

    Terminal until the user re-authorizes; the integration has already been
    marked disconnected when this is raised.
    """

    def __init__(self, provider: str, reason: str = "") -> None:
        self.provider = provider
        self.reason = reason
        message = f"{provider} integration needs reconnection"
        super().__init__(f"{message}: {reason}" if reason else message)


@dataclass
class SyncResult:
    """Outcome of one collector run.

    ``success`` is True when at least the run itself completed; individual
    endpoint failures are listed in ``failed_endpoints`` and make the run
    ``degraded`` rather than failed.
    """

    provider: str
    success: bool = True
    metrics_written: int = 0
    food_entries_written: int = 0
    events_written: int = 0
    weather_days_written: int = 0
    failed_endpoints: list[str] = field(default_factory=list)
    error: str | None = None
    needs_reconnect: bool = False

    @property
    def degraded(self) -> bool:
        return self.success and bool(self.failed_endpoints)

    @property
    def status(self) -> str:
        if self.needs_reconnect:
            return "needs_reconnect"
        if not self.success:
            return "failure"
        return "degraded" if self.degraded else "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "status": self.status,
            "metrics_written": self.metrics_written,
            "food_entries_written": self.food_entries_written,
            "events_written": self.events_written,
            "weather_days_written": self.weather_days_written,
            "failed_endpoints": self.failed_endpoints,
            "error": self.error,
        }


@runtime_checkable
class SourceCollector(Protocol):
    """A collector pulls a bounded window from one provider for one user.

    Writes are idempotent: re-running a sync supersedes the rows of the
    previous run for the same window instead of duplicating them.
    """

    @property
    def provider(self) -> str:
        """Integration/provider key: 'fitbit', 'google_calendar', ..."""
        ...

    async def sync(self, user_id: str) -> SyncResult:
        ...
