"""Health data repository: CRUD over the shared store.

The repository mediates between the record dataclasses in
:mod:`healthhub.core.storage.models` and SQLite. OAuth tokens and cycle
entries pass through :class:`FieldEncryptor`; everything else is stored in
plain columns so window queries can run in SQL. All reads return rows
newest-first.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from healthhub.core.storage.database import HealthDatabase
from healthhub.core.storage.encryption import FieldEncryptor
from healthhub.core.storage.models import (
    AnalysisRun,
    AnalyzedInsight,
    CalendarEvent,
    CycleEntry,
    FoodEntry,
    HealthMetric,
    InsightBatch,
    Integration,
    ManualLog,
    MedicationLog,
    Profile,
    WeatherRecord,
)
from healthhub.core.storage.timestamps import to_utc_iso, utc_now

logger = logging.getLogger(__name__)

# Tables holding per-user rows, in deletion order
_USER_TABLES = (
    "health_metrics",
    "manual_logs",
    "food_entries",
    "calendar_events",
    "weather_data",
    "medication_logs",
    "cycle_entries",
    "ai_insights",
    "analysis_runs",
    "integrations",
    "profiles",
)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


def _load_json(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Discarding unreadable JSON column value")
        return None


def _dump_json(value: Any) -> str | None:
    if not value:
        return None
    return json.dumps(value, separators=(",", ":"))


class HealthRepository:
    """CRUD repository for metrics, logs, events, integrations and insights.

    Usage::

        db = HealthDatabase(":memory:")
        db.initialize()
        repo = HealthRepository(db, FieldEncryptor(key="..."))

        repo.insert_metrics([HealthMetric(...)])
        recent = repo.get_metrics("user-1", since=week_ago)
    """

    def __init__(self, database: HealthDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return to_utc_iso(utc_now())

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    def _fetchall(self, query: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._db.lock:
            return self._db.connection.execute(query, tuple(params)).fetchall()

    def _fetchone(self, query: str, params: Iterable[Any] = ()) -> sqlite3.Row | None:
        with self._db.lock:
            return self._db.connection.execute(query, tuple(params)).fetchone()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialize a write and commit it atomically, rolling back on error."""
        with self._db.lock:
            conn = self._db.connection
            try:
                yield conn
            except sqlite3.Error as exc:
                conn.rollback()
                raise RepositoryError(f"Write failed: {exc}") from exc
            except Exception:
                conn.rollback()
                raise
            else:
                conn.commit()

    @staticmethod
    def _window(
        column: str,
        user_id: str,
        since: datetime | str | None,
        until: datetime | str | None,
    ) -> tuple[str, list[Any]]:
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]
        if since is not None:
            conditions.append(f"{column} >= ?")
            params.append(to_utc_iso(since))
        if until is not None:
            conditions.append(f"{column} <= ?")
            params.append(to_utc_iso(until))
        return " AND ".join(conditions), params

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def upsert_profile(self, profile: Profile) -> None:
        """Insert or update a user's profile. ``None`` fields keep stored values."""
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO profiles
                       (user_id, timezone, location_city, latitude, longitude,
                        analysis_frequency, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(user_id) DO UPDATE SET
                       timezone = COALESCE(excluded.timezone, timezone),
                       location_city = COALESCE(excluded.location_city, location_city),
                       latitude = COALESCE(excluded.latitude, latitude),
                       longitude = COALESCE(excluded.longitude, longitude),
                       analysis_frequency = COALESCE(excluded.analysis_frequency, analysis_frequency),
                       updated_at = excluded.updated_at""",
                (
                    profile.user_id,
                    profile.timezone,
                    profile.location_city,
                    profile.latitude,
                    profile.longitude,
                    profile.analysis_frequency,
                    self._now_iso(),
                ),
            )

    def get_profile(self, user_id: str) -> Profile | None:
        row = self._fetchone("SELECT * FROM profiles WHERE user_id = ?", (user_id,))
        if row is None:
            return None
        return Profile(
            user_id=row["user_id"],
            timezone=row["timezone"],
            location_city=row["location_city"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            analysis_frequency=row["analysis_frequency"],
        )

    # ------------------------------------------------------------------
    # Health metrics
    # ------------------------------------------------------------------

    def _insert_metric_rows(
        self, conn: sqlite3.Connection, metrics: Iterable[HealthMetric]
    ) -> int:
        count = 0
        for metric in metrics:
            if not metric.user_id:
                raise RepositoryError("HealthMetric.user_id is required")
            conn.execute(
                """INSERT INTO health_metrics
                       (id, user_id, metric_type, value, unit, source, recorded_at, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    metric.id or self._new_id(),
                    metric.user_id,
                    metric.metric_type,
                    metric.value,
                    metric.unit,
                    metric.source,
                    to_utc_iso(metric.recorded_at),
                    _dump_json(metric.metadata),
                ),
            )
            count += 1
        return count

    def insert_metrics(self, metrics: Iterable[HealthMetric]) -> int:
        """Append metric rows. Returns the number inserted."""
        with self._transaction() as conn:
            return self._insert_metric_rows(conn, metrics)

    def replace_metrics(
        self,
        user_id: str,
        source: str,
        metrics: Iterable[HealthMetric],
        *,
        since: datetime | str,
        until: datetime | str | None = None,
        metric_types: Iterable[str] | None = None,
        exclude_types: Iterable[str] | None = None,
        metadata_date: str | None = None,
    ) -> tuple[int, int]:
        """Delete a source's rows in a window, then insert the new rows.

        Both steps run in one transaction, so a sync either fully supersedes
        the window or leaves it untouched.

        Args:
            user_id: Owner of the rows.
            source: Only rows from this source are deleted.
            metrics: Replacement rows.
            since: Window lower bound (inclusive).
            until: Optional window upper bound (inclusive).
            metric_types: Restrict the delete to these metric types.
            exclude_types: Never delete these metric types.
            metadata_date: Only delete rows whose ``metadata.date`` equals this
                provider day (used to scope sleep replacement to one night).

        Returns:
            ``(deleted, inserted)`` row counts.
        """
        where, params = self._window("recorded_at", user_id, since, until)
        where += " AND source = ?"
        params.append(source)
        if metric_types is not None:
            types = list(metric_types)
            where += f" AND metric_type IN ({','.join('?' for _ in types)})"
            params.extend(types)
        if exclude_types is not None:
            excluded = list(exclude_types)
            where += f" AND metric_type NOT IN ({','.join('?' for _ in excluded)})"
            params.extend(excluded)
        if metadata_date is not None:
            where += " AND json_extract(metadata_json, '$.date') = ?"
            params.append(metadata_date)

        with self._transaction() as conn:
            deleted = conn.execute(f"DELETE FROM health_metrics WHERE {where}", params).rowcount
            inserted = self._insert_metric_rows(conn, metrics)
        logger.debug(
            "Replaced %s metrics for %s: %d deleted, %d inserted",
            source, user_id, deleted, inserted,
        )
        return deleted, inserted

    def get_metrics(
        self,
        user_id: str,
        *,
        since: datetime | str | None = None,
        until: datetime | str | None = None,
        metric_type: str | None = None,
        source: str | None = None,
        limit: int | None = None,
    ) -> list[HealthMetric]:
        """Query metrics in a window, newest first."""
        where, params = self._window("recorded_at", user_id, since, until)
        if metric_type:
            where += " AND metric_type = ?"
            params.append(metric_type)
        if source:
            where += " AND source = ?"
            params.append(source)
        query = f"SELECT * FROM health_metrics WHERE {where} ORDER BY recorded_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        return [
            HealthMetric(
                id=row["id"],
                user_id=row["user_id"],
                metric_type=row["metric_type"],
                value=row["value"],
                unit=row["unit"],
                source=row["source"],
                recorded_at=row["recorded_at"],
                metadata=_load_json(row["metadata_json"]) or {},
            )
            for row in self._fetchall(query, params)
        ]

    # ------------------------------------------------------------------
    # Manual logs
    # ------------------------------------------------------------------

    def add_manual_log(self, log: ManualLog) -> str:
        """Persist a manual log and return its ID."""
        log_id = log.id or self._new_id()
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO manual_logs
                       (id, user_id, log_type, value, severity, logged_at, notes, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    log_id,
                    log.user_id,
                    log.log_type,
                    log.value,
                    log.severity,
                    to_utc_iso(log.logged_at),
                    log.notes,
                    _dump_json(log.metadata),
                ),
            )
        return log_id

    def update_manual_log(
        self,
        user_id: str,
        log_id: str,
        *,
        value: str | None = None,
        logged_at: datetime | str | None = None,
        severity: int | None = None,
        notes: str | None = None,
    ) -> bool:
        """Edit a manual log's value/time/severity/notes.

        Returns:
            True if the log exists and was updated.
        """
        assignments: list[str] = []
        params: list[Any] = []
        if value is not None:
            assignments.append("value = ?")
            params.append(value)
        if logged_at is not None:
            assignments.append("logged_at = ?")
            params.append(to_utc_iso(logged_at))
        if severity is not None:
            assignments.append("severity = ?")
            params.append(severity)
        if notes is not None:
            assignments.append("notes = ?")
            params.append(notes)
        if not assignments:
            return False

        assignments.append("updated_at = ?")
        params.extend([self._now_iso(), user_id, log_id])
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE manual_logs SET {', '.join(assignments)} WHERE user_id = ? AND id = ?",
                params,
            )
        return cursor.rowcount > 0

    def delete_manual_log(self, user_id: str, log_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM manual_logs WHERE user_id = ? AND id = ?", (user_id, log_id)
            )
        return cursor.rowcount > 0

    def get_manual_logs(
        self,
        user_id: str,
        *,
        since: datetime | str | None = None,
        until: datetime | str | None = None,
        log_type: str | None = None,
        limit: int | None = None,
    ) -> list[ManualLog]:
        """Query manual logs in a window, newest first."""
        where, params = self._window("logged_at", user_id, since, until)
        if log_type:
            where += " AND log_type = ?"
            params.append(log_type)
        query = f"SELECT * FROM manual_logs WHERE {where} ORDER BY logged_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        return [
            ManualLog(
                id=row["id"],
                user_id=row["user_id"],
                log_type=row["log_type"],
                value=row["value"],
                severity=row["severity"],
                logged_at=row["logged_at"],
                notes=row["notes"],
                metadata=_load_json(row["metadata_json"]) or {},
            )
            for row in self._fetchall(query, params)
        ]

    def purge_manual_logs_before(self, user_id: str, before: datetime | str) -> int:
        """Delete a user's manual logs older than ``before``."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM manual_logs WHERE user_id = ? AND logged_at < ?",
                (user_id, to_utc_iso(before)),
            )
        logger.info("Purged %d manual logs for %s before %s", cursor.rowcount, user_id, before)
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Food entries
    # ------------------------------------------------------------------

    def upsert_food_entries(self, entries: Iterable[FoodEntry]) -> int:
        """Insert food entries, skipping any whose (user, external id) already exists.

        Conditional insert keyed on the unique constraint, so retried or
        overlapping syncs cannot create duplicates. Entries without an
        external id (manual entries) always insert.

        Returns:
            Number of rows actually inserted.
        """
        inserted = 0
        with self._transaction() as conn:
            for entry in entries:
                cursor = conn.execute(
                    """INSERT INTO food_entries
                           (id, user_id, source, external_id, name, brand, meal_type,
                            calories, protein, carbs, fat, fiber, sodium, sugar,
                            contains_dairy, contains_gluten, contains_caffeine, logged_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(user_id, external_id) DO NOTHING""",
                    (
                        entry.id or self._new_id(),
                        entry.user_id,
                        entry.source,
                        entry.external_id,
                        entry.name,
                        entry.brand,
                        entry.meal_type,
                        entry.calories,
                        entry.protein,
                        entry.carbs,
                        entry.fat,
                        entry.fiber,
                        entry.sodium,
                        entry.sugar,
                        int(entry.contains_dairy),
                        int(entry.contains_gluten),
                        int(entry.contains_caffeine),
                        to_utc_iso(entry.logged_at),
                    ),
                )
                inserted += cursor.rowcount
        return inserted

    def get_food_entries(
        self,
        user_id: str,
        *,
        since: datetime | str | None = None,
        until: datetime | str | None = None,
    ) -> list[FoodEntry]:
        where, params = self._window("logged_at", user_id, since, until)
        rows = self._fetchall(
            f"SELECT * FROM food_entries WHERE {where} ORDER BY logged_at DESC", params
        )
        return [
            FoodEntry(
                id=row["id"],
                user_id=row["user_id"],
                source=row["source"],
                external_id=row["external_id"],
                name=row["name"],
                brand=row["brand"],
                meal_type=row["meal_type"],
                calories=row["calories"],
                protein=row["protein"],
                carbs=row["carbs"],
                fat=row["fat"],
                fiber=row["fiber"],
                sodium=row["sodium"],
                sugar=row["sugar"],
                contains_dairy=bool(row["contains_dairy"]),
                contains_gluten=bool(row["contains_gluten"]),
                contains_caffeine=bool(row["contains_caffeine"]),
                logged_at=row["logged_at"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Calendar events
    # ------------------------------------------------------------------

    def replace_calendar_events(
        self,
        user_id: str,
        events: Iterable[CalendarEvent],
        *,
        since: datetime | str,
        until: datetime | str,
    ) -> int:
        """Replace all of a user's events starting within [since, until]."""
        where, params = self._window("start_time", user_id, since, until)
        count = 0
        with self._transaction() as conn:
            conn.execute(f"DELETE FROM calendar_events WHERE {where}", params)
            for event in events:
                conn.execute(
                    """INSERT INTO calendar_events
                           (id, user_id, google_event_id, title, description, location,
                            start_time, end_time, event_type, is_all_day)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        event.id or self._new_id(),
                        user_id,
                        event.google_event_id,
                        event.title,
                        event.description,
                        event.location,
                        to_utc_iso(event.start_time),
                        to_utc_iso(event.end_time) if event.end_time else None,
                        event.event_type,
                        int(event.is_all_day),
                    ),
                )
                count += 1
        return count

    def get_calendar_events(
        self,
        user_id: str,
        *,
        since: datetime | str | None = None,
        until: datetime | str | None = None,
    ) -> list[CalendarEvent]:
        where, params = self._window("start_time", user_id, since, until)
        rows = self._fetchall(
            f"SELECT * FROM calendar_events WHERE {where} ORDER BY start_time DESC", params
        )
        return [
            CalendarEvent(
                id=row["id"],
                user_id=row["user_id"],
                google_event_id=row["google_event_id"],
                title=row["title"],
                description=row["description"],
                location=row["location"],
                start_time=row["start_time"],
                end_time=row["end_time"],
                event_type=row["event_type"],
                is_all_day=bool(row["is_all_day"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Weather
    # ------------------------------------------------------------------

    def upsert_weather(self, records: Iterable[WeatherRecord]) -> int:
        """Insert or overwrite daily weather rows keyed on (user, date)."""
        count = 0
        with self._transaction() as conn:
            for rec in records:
                conn.execute(
                    """INSERT INTO weather_data
                           (id, user_id, date, temperature_high, temperature_low,
                            precipitation_mm, humidity_avg, pressure_hpa, weather_code,
                            weather_description, location_city, latitude, longitude)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(user_id, date) DO UPDATE SET
                           temperature_high = excluded.temperature_high,
                           temperature_low = excluded.temperature_low,
                           precipitation_mm = excluded.precipitation_mm,
                           humidity_avg = excluded.humidity_avg,
                           pressure_hpa = excluded.pressure_hpa,
                           weather_code = excluded.weather_code,
                           weather_description = excluded.weather_description,
                           location_city = excluded.location_city,
                           latitude = excluded.latitude,
                           longitude = excluded.longitude""",
                    (
                        rec.id or self._new_id(),
                        rec.user_id,
                        rec.date,
                        rec.temperature_high,
                        rec.temperature_low,
                        rec.precipitation_mm,
                        rec.humidity_avg,
                        rec.pressure_hpa,
                        rec.weather_code,
                        rec.weather_description,
                        rec.location_city,
                        rec.latitude,
                        rec.longitude,
                    ),
                )
                count += 1
        return count

    def get_weather(
        self,
        user_id: str,
        *,
        since_date: str | None = None,
        until_date: str | None = None,
    ) -> list[WeatherRecord]:
        """Query daily weather by ``YYYY-MM-DD`` bounds, newest first."""
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]
        if since_date:
            conditions.append("date >= ?")
            params.append(since_date)
        if until_date:
            conditions.append("date <= ?")
            params.append(until_date)
        rows = self._fetchall(
            f"SELECT * FROM weather_data WHERE {' AND '.join(conditions)} ORDER BY date DESC",
            params,
        )
        return [
            WeatherRecord(
                id=row["id"],
                user_id=row["user_id"],
                date=row["date"],
                temperature_high=row["temperature_high"],
                temperature_low=row["temperature_low"],
                precipitation_mm=row["precipitation_mm"] or 0.0,
                humidity_avg=row["humidity_avg"],
                pressure_hpa=row["pressure_hpa"] if row["pressure_hpa"] is not None else 1013.0,
                weather_code=row["weather_code"],
                weather_description=row["weather_description"],
                location_city=row["location_city"],
                latitude=row["latitude"],
                longitude=row["longitude"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Medication logs
    # ------------------------------------------------------------------

    def add_medication_log(self, log: MedicationLog) -> str:
        log_id = log.id or self._new_id()
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO medication_logs (id, user_id, logged_at, took_medication, notes)
                   VALUES (?, ?, ?, ?, ?)""",
                (log_id, log.user_id, to_utc_iso(log.logged_at), int(log.took_medication), log.notes),
            )
        return log_id

    def get_medication_logs(
        self,
        user_id: str,
        *,
        since: datetime | str | None = None,
        until: datetime | str | None = None,
    ) -> list[MedicationLog]:
        where, params = self._window("logged_at", user_id, since, until)
        rows = self._fetchall(
            f"SELECT * FROM medication_logs WHERE {where} ORDER BY logged_at DESC", params
        )
        return [
            MedicationLog(
                id=row["id"],
                user_id=row["user_id"],
                logged_at=row["logged_at"],
                took_medication=bool(row["took_medication"]),
                notes=row["notes"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Cycle entries (encrypted)
    # ------------------------------------------------------------------

    def upsert_cycle_entry(self, entry: CycleEntry) -> str:
        """Store one cycle day, replacing any entry for the same date."""
        entry_id = entry.id or self._new_id()
        payload = self._enc.encrypt(
            {"phase": entry.phase, "flow": entry.flow, "notes": entry.notes}
        )
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO cycle_entries (id, user_id, date, entry_enc)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(user_id, date) DO UPDATE SET entry_enc = excluded.entry_enc""",
                (entry_id, entry.user_id, entry.date, payload),
            )
        return entry_id

    def get_cycle_entries(
        self, user_id: str, *, since_date: str | None = None
    ) -> list[CycleEntry]:
        """Decrypt a user's cycle entries, newest first."""
        params: list[Any] = [user_id]
        query = "SELECT * FROM cycle_entries WHERE user_id = ?"
        if since_date:
            query += " AND date >= ?"
            params.append(since_date)
        query += " ORDER BY date DESC"

        entries: list[CycleEntry] = []
        for row in self._fetchall(query, params):
            data = self._enc.decrypt(row["entry_enc"]) or {}
            entries.append(CycleEntry(
                id=row["id"],
                user_id=row["user_id"],
                date=row["date"],
                phase=data.get("phase", ""),
                flow=data.get("flow"),
                notes=data.get("notes"),
            ))
        return entries

    # ------------------------------------------------------------------
    # Integrations
    # ------------------------------------------------------------------

    def upsert_integration(self, integration: Integration) -> None:
        """Insert or update connection state for (user, provider)."""
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO integrations
                       (id, user_id, provider, is_connected, access_token_enc,
                        refresh_token_enc, token_expires_at, last_sync_at, connected_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(user_id, provider) DO UPDATE SET
                       is_connected = excluded.is_connected,
                       access_token_enc = excluded.access_token_enc,
                       refresh_token_enc = excluded.refresh_token_enc,
                       token_expires_at = excluded.token_expires_at,
                       last_sync_at = COALESCE(excluded.last_sync_at, last_sync_at),
                       connected_at = COALESCE(excluded.connected_at, connected_at)""",
                (
                    integration.id or self._new_id(),
                    integration.user_id,
                    integration.provider,
                    int(integration.is_connected),
                    self._enc.encrypt_text(integration.access_token) or None,
                    self._enc.encrypt_text(integration.refresh_token) or None,
                    integration.token_expires_at,
                    integration.last_sync_at,
                    integration.connected_at,
                ),
            )

    def get_integration(self, user_id: str, provider: str) -> Integration | None:
        row = self._fetchone(
            "SELECT * FROM integrations WHERE user_id = ? AND provider = ?",
            (user_id, provider),
        )
        if row is None:
            return None
        return Integration(
            id=row["id"],
            user_id=row["user_id"],
            provider=row["provider"],
            is_connected=bool(row["is_connected"]),
            access_token=self._enc.decrypt_text(row["access_token_enc"]),
            refresh_token=self._enc.decrypt_text(row["refresh_token_enc"]),
            token_expires_at=row["token_expires_at"],
            last_sync_at=row["last_sync_at"],
            connected_at=row["connected_at"],
        )

    def disconnect_integration(self, user_id: str, provider: str) -> bool:
        """Soft-disable an integration: mark disconnected and clear tokens."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """UPDATE integrations
                   SET is_connected = 0, access_token_enc = NULL, refresh_token_enc = NULL
                   WHERE user_id = ? AND provider = ?""",
                (user_id, provider),
            )
        if cursor.rowcount:
            logger.info("Disconnected %s integration for %s", provider, user_id)
        return cursor.rowcount > 0

    def mark_synced(self, user_id: str, provider: str, at: datetime | None = None) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE integrations SET last_sync_at = ? WHERE user_id = ? AND provider = ?",
                (to_utc_iso(at or utc_now()), user_id, provider),
            )

    # ------------------------------------------------------------------
    # Insights and analysis runs
    # ------------------------------------------------------------------

    def save_insight_batch(
        self,
        user_id: str,
        source: str,
        insights: list[AnalyzedInsight],
        *,
        run_at: datetime | None = None,
    ) -> InsightBatch:
        """Append a batch of insights and record the run, even when empty.

        Args:
            user_id: Owner of the batch.
            source: 'heuristic' or 'llm'.
            insights: Insights to persist (may be empty).
            run_at: Run timestamp; defaults to now.

        Returns:
            The persisted batch.
        """
        batch_id = self._new_id()
        created_at = to_utc_iso(run_at or utc_now())
        with self._transaction() as conn:
            for insight in insights:
                conn.execute(
                    """INSERT INTO ai_insights
                           (id, user_id, batch_id, source, insight_type, title,
                            description, confidence, related_metrics_json, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        self._new_id(),
                        user_id,
                        batch_id,
                        source,
                        insight.type,
                        insight.title,
                        insight.description,
                        insight.confidence,
                        json.dumps(insight.related_metrics),
                        created_at,
                    ),
                )
            conn.execute(
                """INSERT INTO analysis_runs (user_id, source, batch_id, last_run_at, insight_count)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(user_id, source) DO UPDATE SET
                       batch_id = excluded.batch_id,
                       last_run_at = excluded.last_run_at,
                       insight_count = excluded.insight_count""",
                (user_id, source, batch_id, created_at, len(insights)),
            )
        logger.info(
            "Saved %s insight batch %s for %s (%d insights)",
            source, batch_id, user_id, len(insights),
        )
        return InsightBatch(
            batch_id=batch_id,
            source=source,
            created_at=created_at,
            insights=[
                AnalyzedInsight(
                    type=i.type,
                    title=i.title,
                    description=i.description,
                    confidence=i.confidence,
                    related_metrics=list(i.related_metrics),
                    source=source,
                )
                for i in insights
            ],
        )

    def get_analysis_run(self, user_id: str, source: str = "heuristic") -> AnalysisRun | None:
        row = self._fetchone(
            "SELECT * FROM analysis_runs WHERE user_id = ? AND source = ?", (user_id, source)
        )
        if row is None:
            return None
        return AnalysisRun(
            user_id=row["user_id"],
            source=row["source"],
            batch_id=row["batch_id"],
            last_run_at=row["last_run_at"],
            insight_count=row["insight_count"],
        )

    def get_latest_insight_batch(
        self, user_id: str, source: str = "heuristic"
    ) -> InsightBatch | None:
        """Return the last-persisted batch for a source, including empty batches."""
        run = self.get_analysis_run(user_id, source)
        if run is None:
            return None
        rows = self._fetchall(
            """SELECT * FROM ai_insights WHERE user_id = ? AND batch_id = ?
               ORDER BY rowid""",
            (user_id, run.batch_id),
        )
        return InsightBatch(
            batch_id=run.batch_id,
            source=source,
            created_at=run.last_run_at,
            insights=[
                AnalyzedInsight(
                    type=row["insight_type"],
                    title=row["title"],
                    description=row["description"],
                    confidence=row["confidence"],
                    related_metrics=_load_json(row["related_metrics_json"]) or [],
                    source=row["source"],
                )
                for row in rows
            ],
        )

    # ------------------------------------------------------------------
    # Deletion (right to deletion)
    # ------------------------------------------------------------------

    def delete_all_user_data(self, user_id: str) -> int:
        """Delete every row owned by a user across all tables.

        Returns:
            Total number of rows deleted.
        """
        total = 0
        with self._transaction() as conn:
            for table in _USER_TABLES:
                total += conn.execute(
                    f"DELETE FROM {table} WHERE user_id = ?", (user_id,)
                ).rowcount
        logger.warning("Deleted ALL data for user %s: %d rows removed", user_id, total)
        return total
