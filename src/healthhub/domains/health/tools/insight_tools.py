"""MCP tools for heuristic and AI-generated insights.

``get_insights`` serves the cached heuristic batch, running the analysis
engine only when the user's refresh window has lapsed. The AI tools send
the user's recent data to the configured remote model and are recorded as
disclosures in the audit log.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from healthhub.core.llm.provider import ProviderError
from healthhub.core.llm.response import InsightParseError
from healthhub.domains.health.insights.scheduler import FREQUENCIES

if TYPE_CHECKING:
    from healthhub.core.audit.logger import AuditLogger
    from healthhub.domains.health.insights.remote_generator import RemoteInsightGenerator
    from healthhub.domains.health.insights.scheduler import InsightScheduler

logger = logging.getLogger(__name__)


def register_insight_tools(
    mcp: FastMCP,
    scheduler: InsightScheduler,
    generator: RemoteInsightGenerator,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register insight tools on the MCP server."""

    @mcp.tool
    async def get_insights(ctx: Context, user_id: str, refresh: bool = False) -> str:
        """Get heuristic health insights from the last 30 days of data.

        Results are cached per user and recomputed when older than the
        user's analysis frequency (default 30 minutes) or 24 hours.

        Args:
            user_id: The user to analyze.
            refresh: Recompute now even if the cached batch is fresh.
        """
        start_time = time.monotonic()
        batch = await scheduler.get_batch(user_id, force=refresh)
        elapsed_ms = round((time.monotonic() - start_time) * 1000, 1)

        if audit_logger is not None:
            audit_logger.log_tool_call(
                "get_insights", {"refresh": refresh},
                user_id=user_id, duration_ms=elapsed_ms,
            )
        return json.dumps({
            "status": "ok",
            "batch_id": batch.batch_id,
            "generated_at": batch.created_at,
            "insights": [i.to_dict() for i in batch.insights],
            "duration_ms": elapsed_ms,
        })

    @mcp.tool
    async def generate_ai_insights(ctx: Context, user_id: str) -> str:
        """Generate insights with the remote model from the last 30 days of data.

        Sends metrics, logs and calendar events (filtered by the server's
        privacy mode) to the configured LLM provider.

        Args:
            user_id: The user to analyze.
        """
        start_time = time.monotonic()
        try:
            result = await generator.generate(user_id)
        except (ProviderError, InsightParseError) as exc:
            logger.error("AI insight generation failed for %s: %s", user_id, exc)
            return json.dumps({
                "status": "error",
                "error_type": type(exc).__name__,
                "message": str(exc),
            })
        elapsed_ms = round((time.monotonic() - start_time) * 1000, 1)
        return json.dumps({"status": "ok", **result.to_dict(), "duration_ms": elapsed_ms})

    @mcp.tool
    async def ask_health_question(ctx: Context, user_id: str, question: str) -> str:
        """Ask the remote model a free-text question about your own data.

        Args:
            user_id: The user asking.
            question: The question (e.g., 'Why am I tired on Mondays?').
        """
        if not question.strip():
            return json.dumps({"status": "error", "message": "question is required"})

        start_time = time.monotonic()
        try:
            result = await generator.generate(user_id, question.strip())
        except (ProviderError, InsightParseError) as exc:
            logger.error("Health question failed for %s: %s", user_id, exc)
            return json.dumps({
                "status": "error",
                "error_type": type(exc).__name__,
                "message": str(exc),
            })
        elapsed_ms = round((time.monotonic() - start_time) * 1000, 1)
        return json.dumps({"status": "ok", **result.to_dict(), "duration_ms": elapsed_ms})

    @mcp.tool
    async def set_analysis_frequency(ctx: Context, user_id: str, frequency: str) -> str:
        """Set how often heuristic insights are recomputed.

        Args:
            user_id: The user to update.
            frequency: One of '5min', '15min', '30min', '1hr', '2hr'.
        """
        try:
            scheduler.set_frequency(user_id, frequency)
        except ValueError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        return json.dumps({
            "status": "saved",
            "frequency": frequency,
            "allowed": list(FREQUENCIES),
        })
