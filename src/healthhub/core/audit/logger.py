"""Audit logger: sync, analysis and LLM-disclosure trail.

Records tool invocations, collector sync runs, analysis runs, remote LLM
disclosures and deletions in an audit table that never holds raw health
data:

* ``tool_input_hash``: SHA-256 of canonical JSON of the tool input.
* ``llm_disclosed``: True when health data was sent to a remote model.
* ``privacy_mode``: which prompt filter was active for that disclosure.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from typing import Any

from healthhub.core.storage.database import HealthDatabase
from healthhub.core.storage.timestamps import to_utc_iso, utc_now

logger = logging.getLogger(__name__)


def _hash_input(data: Any) -> str:
    """SHA-256 hash of canonical JSON, or empty string if not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()
    except (TypeError, ValueError):
        return ""


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'tool_invocation' | 'sync' | 'analysis_run' | 'llm_generation' | 'data_delete'
    tool_name: str = ""
    user_id: str | None = None
    tool_input_hash: str = ""
    privacy_mode: str | None = None
    llm_provider: str | None = None
    llm_disclosed: bool = False
    batch_id: str | None = None
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure' | 'degraded'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditLogger:
    """Records audit events to the ``audit_log`` table.

    Writes are committed immediately. A failed audit write is logged and
    reported as an empty event ID; it never fails the operation being
    audited.

    Usage::

        audit = AuditLogger(health_db)
        audit.log_sync("user-1", "fitbit", status="success", metadata={"metrics": 5})
    """

    def __init__(self, database: HealthDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its UUID ("" if the write failed)."""
        event_id = str(uuid.uuid4())
        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"), default=str)
            if event.metadata
            else None
        )

        try:
            with self._db.lock:
                conn = self._db.connection
                conn.execute(
                    """INSERT INTO audit_log
                       (id, timestamp, action, tool_name, user_id, tool_input_hash,
                        privacy_mode, llm_provider, llm_disclosed, batch_id,
                        duration_ms, status, error_type, metadata_json)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        event_id,
                        to_utc_iso(utc_now()),
                        event.action,
                        event.tool_name or None,
                        event.user_id,
                        event.tool_input_hash or None,
                        event.privacy_mode,
                        event.llm_provider,
                        1 if event.llm_disclosed else 0,
                        event.batch_id,
                        event.duration_ms,
                        event.status,
                        event.error_type,
                        metadata_json,
                    ),
                )
                conn.commit()
        except sqlite3.Error:
            logger.exception("Failed to write audit event %s; event lost", event.action)
            return ""

        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        user_id: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log an MCP tool invocation. ``tool_input`` is hashed, never stored."""
        return self.log_event(AuditEvent(
            action="tool_invocation",
            tool_name=tool_name,
            user_id=user_id,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_sync(
        self,
        user_id: str,
        provider: str,
        *,
        status: str = "success",
        duration_ms: float | None = None,
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a collector sync run.

        Args:
            user_id: User whose data was synced.
            provider: Collector name ('fitbit', 'google_calendar', ...).
            status: 'success', 'degraded' (some endpoints failed) or 'failure'.
            duration_ms: Wall time of the sync.
            error_type: Exception class name on failure.
            metadata: Row counts and failed endpoint names.
        """
        return self.log_event(AuditEvent(
            action="sync",
            tool_name=provider,
            user_id=user_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_analysis_run(
        self,
        user_id: str,
        *,
        batch_id: str,
        insight_count: int,
        duration_ms: float | None = None,
        failed_passes: list[str] | None = None,
    ) -> str:
        """Log a heuristic analysis run (no data leaves the device)."""
        return self.log_event(AuditEvent(
            action="analysis_run",
            user_id=user_id,
            batch_id=batch_id,
            duration_ms=duration_ms,
            status="degraded" if failed_passes else "success",
            metadata={"insight_count": insight_count, "failed_passes": failed_passes or []},
        ))

    def log_llm_generation(
        self,
        user_id: str,
        *,
        llm_provider: str,
        privacy_mode: str,
        question: str | None = None,
        batch_id: str | None = None,
        used_fallback: bool = False,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a remote generation call. Always recorded as a disclosure."""
        return self.log_event(AuditEvent(
            action="llm_generation",
            tool_name="ask_health_question" if question else "generate_ai_insights",
            user_id=user_id,
            tool_input_hash=_hash_input({"question": question}) if question else "",
            privacy_mode=privacy_mode,
            llm_provider=llm_provider,
            llm_disclosed=True,
            batch_id=batch_id,
            duration_ms=duration_ms,
            status="degraded" if used_fallback and status == "success" else status,
            error_type=error_type,
            metadata={**(metadata or {}), "used_fallback": used_fallback},
        ))

    def log_data_delete(
        self,
        *,
        tool_name: str = "",
        user_id: str | None = None,
        count: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a data deletion event with the number of rows removed."""
        return self.log_event(AuditEvent(
            action="data_delete",
            tool_name=tool_name,
            user_id=user_id,
            metadata={**(metadata or {}), "records_deleted": count},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        user_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters, newest first."""
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if user_id:
            conditions.append("user_id = ?")
            params.append(user_id)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC, rowid DESC LIMIT ?"
        params.append(limit)

        with self._db.lock:
            rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_disclosures(self, *, user_id: str | None = None) -> int:
        """Count events where health data was sent to a remote LLM."""
        query = "SELECT COUNT(*) FROM audit_log WHERE llm_disclosed = 1"
        params: list[Any] = []
        if user_id:
            query += " AND user_id = ?"
            params.append(user_id)
        with self._db.lock:
            row = self._db.connection.execute(query, params).fetchone()
        return row[0]
