"""MCP tools for source collector syncs and integration lifecycle.

Each sync tool runs one collector for one user and reports its outcome as
JSON. Provider failures never raise to the client: partial endpoint
failures come back as ``degraded``, a failed token refresh as
``needs_reconnect``. Every run is audited.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from healthhub.domains.health.connectors import CollectorError

if TYPE_CHECKING:
    from healthhub.core.audit.logger import AuditLogger
    from healthhub.domains.health.connectors import SourceCollector
    from healthhub.domains.health.connectors.oauth import OAuthTokenManager

logger = logging.getLogger(__name__)


def register_sync_tools(
    mcp: FastMCP,
    collectors: dict[str, SourceCollector],
    token_managers: dict[str, OAuthTokenManager],
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register sync and integration tools on the MCP server.

    Args:
        mcp: Server to register on.
        collectors: Collectors keyed by provider name. A missing provider is
            reported as not configured.
        token_managers: OAuth managers keyed by provider name.
        audit_logger: Optional audit trail.
    """

    async def _run_sync(provider: str, user_id: str) -> str:
        collector = collectors.get(provider)
        if collector is None:
            return json.dumps({
                "status": "error",
                "provider": provider,
                "message": f"{provider} sync is not configured on this server.",
            })

        start_time = time.monotonic()
        result = await collector.sync(user_id)
        elapsed_ms = round((time.monotonic() - start_time) * 1000, 1)

        if audit_logger is not None:
            audit_logger.log_sync(
                user_id,
                provider,
                status=result.status,
                duration_ms=elapsed_ms,
                error_type="IntegrationNeedsReconnectError" if result.needs_reconnect else None,
                metadata={
                    "metrics_written": result.metrics_written,
                    "food_entries_written": result.food_entries_written,
                    "events_written": result.events_written,
                    "weather_days_written": result.weather_days_written,
                    "failed_endpoints": result.failed_endpoints,
                },
            )
        if result.needs_reconnect:
            logger.warning("%s needs reconnection for %s", provider, user_id)

        return json.dumps({**result.to_dict(), "duration_ms": elapsed_ms})

    @mcp.tool
    async def sync_fitbit(ctx: Context, user_id: str) -> str:
        """Sync today's Fitbit activity, sleep, heart rate and food log.

        Args:
            user_id: The user whose Fitbit account to sync.
        """
        return await _run_sync("fitbit", user_id)

    @mcp.tool
    async def sync_google_calendar(ctx: Context, user_id: str) -> str:
        """Sync Google Calendar events from 30 days back to 14 days ahead.

        Args:
            user_id: The user whose primary calendar to sync.
        """
        return await _run_sync("google_calendar", user_id)

    @mcp.tool
    async def sync_weather(ctx: Context, user_id: str) -> str:
        """Sync the last week of daily weather for the user's saved location.

        Args:
            user_id: The user whose location to use (see ``set_profile``).
        """
        return await _run_sync("weather", user_id)

    @mcp.tool
    async def sync_apple_health(ctx: Context, user_id: str) -> str:
        """Import the last 24 hours from the configured Apple Health export.

        Args:
            user_id: The user to import the export into.
        """
        return await _run_sync("apple_health", user_id)

    @mcp.tool
    async def connect_integration(
        ctx: Context,
        user_id: str,
        provider: str,
        code: str,
    ) -> str:
        """Complete an OAuth connection with the code from the redirect.

        Args:
            user_id: The user connecting the account.
            provider: 'fitbit' or 'google_calendar'.
            code: Authorization code delivered to the app callback.
        """
        manager = token_managers.get(provider)
        if manager is None:
            return json.dumps({
                "status": "error",
                "message": f"Unknown or unconfigured provider: {provider}",
            })
        try:
            integration = await manager.exchange_code(user_id, code)
        except CollectorError as exc:
            logger.warning("OAuth exchange failed for %s/%s: %s", user_id, provider, exc)
            return json.dumps({"status": "error", "provider": provider, "message": str(exc)})

        if audit_logger is not None:
            audit_logger.log_tool_call(
                "connect_integration", {"provider": provider}, user_id=user_id
            )
        return json.dumps({
            "status": "connected",
            "provider": provider,
            "token_expires_at": integration.token_expires_at,
        })

    @mcp.tool
    async def disconnect_integration(ctx: Context, user_id: str, provider: str) -> str:
        """Disconnect an integration and clear its stored tokens.

        Args:
            user_id: The user disconnecting the account.
            provider: 'fitbit' or 'google_calendar'.
        """
        manager = token_managers.get(provider)
        if manager is None:
            return json.dumps({
                "status": "error",
                "message": f"Unknown or unconfigured provider: {provider}",
            })
        disconnected = manager.disconnect(user_id)
        if audit_logger is not None:
            audit_logger.log_tool_call(
                "disconnect_integration", {"provider": provider}, user_id=user_id
            )
        return json.dumps({
            "status": "disconnected" if disconnected else "not_found",
            "provider": provider,
        })
