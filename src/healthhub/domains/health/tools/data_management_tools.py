"""MCP tools for health data management (purge, deletion, audit trail).

Manual logs are never removed automatically; these tools are the only way
data leaves the store. All deletions are audit-logged, and the audit trail
itself is viewable here. It never contains raw health data, only hashed
input references.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from healthhub.core.storage.timestamps import to_utc_iso, utc_now

if TYPE_CHECKING:
    from healthhub.core.audit.logger import AuditLogger
    from healthhub.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)


def register_data_management_tools(
    mcp: FastMCP,
    repository: HealthRepository,
    audit_logger: AuditLogger | None = None,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> None:
    """Register data management tools on the MCP server."""

    @mcp.tool
    async def purge_manual_logs(
        ctx: Context,
        user_id: str,
        older_than_days: int = 365,
    ) -> str:
        """Delete a user's manual logs older than a number of days.

        Args:
            user_id: The user whose logs to purge.
            older_than_days: Delete logs older than this many days (default: 365).
        """
        if older_than_days < 1:
            return json.dumps({
                "status": "error",
                "message": "older_than_days must be at least 1.",
            })

        start_time = time.monotonic()
        count = repository.purge_manual_logs_before(
            user_id, clock() - timedelta(days=older_than_days)
        )
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None and count > 0:
            audit_logger.log_data_delete(
                tool_name="purge_manual_logs",
                user_id=user_id,
                count=count,
                metadata={"older_than_days": older_than_days},
            )

        return json.dumps({
            "status": "purged",
            "logs_deleted": count,
            "older_than_days": older_than_days,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def delete_all_user_data(
        ctx: Context,
        user_id: str,
        confirm: str = "",
    ) -> str:
        """Permanently delete ALL stored data for a user.

        Removes metrics, logs, meals, calendar events, weather, medication and
        cycle entries, insights, integrations and the profile. It cannot be
        undone.

        Args:
            user_id: The user whose data to delete.
            confirm: Must be exactly 'DELETE_ALL' to proceed. Safety gate.
        """
        if confirm != "DELETE_ALL":
            return json.dumps({
                "status": "cancelled",
                "message": (
                    "To delete all data for this user, call this tool with "
                    "confirm='DELETE_ALL'. This action cannot be undone."
                ),
            })

        start_time = time.monotonic()
        count = repository.delete_all_user_data(user_id)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_all_user_data",
                user_id=user_id,
                count=count,
                metadata={"confirmed": True},
            )

        logger.warning("All data deleted for %s: %d rows removed", user_id, count)
        return json.dumps({
            "status": "all_deleted",
            "rows_deleted": count,
            "duration_ms": round(elapsed_ms, 1),
            "message": "All data for this user has been permanently deleted.",
        })

    @mcp.tool
    async def get_audit_log(
        ctx: Context,
        user_id: str,
        days: int = 30,
        action: str = "",
        limit: int = 20,
    ) -> str:
        """View recent syncs, analysis runs, deletions and LLM disclosures.

        Args:
            user_id: The user whose audit trail to view.
            days: Number of days to look back (default: 30).
            action: Optional filter, e.g. 'sync', 'analysis_run', 'llm_generation'.
            limit: Maximum number of events to return.
        """
        if audit_logger is None:
            return json.dumps({"status": "error", "message": "Audit logging is disabled."})

        since = to_utc_iso(clock() - timedelta(days=days))
        events = audit_logger.get_events(
            action=action or None, user_id=user_id, since=since, limit=limit
        )

        display_events = []
        for event in events:
            display_events.append({
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "tool_name": event.get("tool_name"),
                "privacy_mode": event.get("privacy_mode"),
                "llm_provider": event.get("llm_provider"),
                "llm_disclosed": bool(event.get("llm_disclosed")),
                "status": event.get("status"),
                "duration_ms": event.get("duration_ms"),
            })

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "llm_disclosures": audit_logger.count_disclosures(user_id=user_id),
            "events": display_events,
        }, indent=2)
