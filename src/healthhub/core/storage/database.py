"""SQLite database management for the HealthHub shared store.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- Per-user settings consumed by collectors and the scheduler
CREATE TABLE IF NOT EXISTS profiles (
    user_id            TEXT PRIMARY KEY,
    timezone           TEXT,
    location_city      TEXT,
    latitude           REAL,
    longitude          REAL,
    analysis_frequency TEXT,
    updated_at         TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Quantitative measurements; replaced per (user, source, metric, day) on sync
CREATE TABLE IF NOT EXISTS health_metrics (
    id            TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL,
    metric_type   TEXT NOT NULL,
    value         REAL NOT NULL,
    unit          TEXT NOT NULL DEFAULT '',
    source        TEXT NOT NULL,
    recorded_at   TEXT NOT NULL,
    metadata_json TEXT,
    created_at    TEXT NOT NULL DEFAULT (datetime('now'))
);

-- User-entered records (symptom, caffeine, supplement, ...)
CREATE TABLE IF NOT EXISTS manual_logs (
    id            TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL,
    log_type      TEXT NOT NULL,
    value         TEXT NOT NULL,
    severity      INTEGER,
    logged_at     TEXT NOT NULL,
    notes         TEXT,
    metadata_json TEXT,
    created_at    TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at    TEXT
);

-- Nutrition entries; provider entries are unique per external id
CREATE TABLE IF NOT EXISTS food_entries (
    id                TEXT PRIMARY KEY,
    user_id           TEXT NOT NULL,
    source            TEXT NOT NULL,
    external_id       TEXT,
    name              TEXT NOT NULL,
    brand             TEXT,
    meal_type         TEXT,
    calories          REAL,
    protein           REAL,
    carbs             REAL,
    fat               REAL,
    fiber             REAL,
    sodium            REAL,
    sugar             REAL,
    contains_dairy    INTEGER NOT NULL DEFAULT 0,
    contains_gluten   INTEGER NOT NULL DEFAULT 0,
    contains_caffeine INTEGER NOT NULL DEFAULT 0,
    logged_at         TEXT NOT NULL,
    created_at        TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (user_id, external_id)
);

CREATE TABLE IF NOT EXISTS calendar_events (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    google_event_id TEXT,
    title           TEXT NOT NULL,
    description     TEXT,
    location        TEXT,
    start_time      TEXT NOT NULL,
    end_time        TEXT,
    event_type      TEXT,
    is_all_day      INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS weather_data (
    id                  TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    date                TEXT NOT NULL,
    temperature_high    REAL,
    temperature_low     REAL,
    precipitation_mm    REAL,
    humidity_avg        REAL,
    pressure_hpa        REAL,
    weather_code        INTEGER,
    weather_description TEXT,
    location_city       TEXT,
    latitude            REAL,
    longitude           REAL,
    created_at          TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (user_id, date)
);

CREATE TABLE IF NOT EXISTS medication_logs (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    logged_at       TEXT NOT NULL,
    took_medication INTEGER NOT NULL,
    notes           TEXT,
    created_at      TEXT NOT NULL DEFAULT (datetime('now'))
);

-- OAuth connection state; tokens are Fernet-encrypted
CREATE TABLE IF NOT EXISTS integrations (
    id                TEXT PRIMARY KEY,
    user_id           TEXT NOT NULL,
    provider          TEXT NOT NULL,
    is_connected      INTEGER NOT NULL DEFAULT 1,
    access_token_enc  TEXT,
    refresh_token_enc TEXT,
    token_expires_at  TEXT,
    last_sync_at      TEXT,
    connected_at      TEXT,
    UNIQUE (user_id, provider)
);

-- Append-only insight batches with provenance
CREATE TABLE IF NOT EXISTS ai_insights (
    id                   TEXT PRIMARY KEY,
    user_id              TEXT NOT NULL,
    batch_id             TEXT NOT NULL,
    source               TEXT NOT NULL,
    insight_type         TEXT NOT NULL,
    title                TEXT NOT NULL,
    description          TEXT NOT NULL,
    confidence           REAL NOT NULL,
    related_metrics_json TEXT,
    created_at           TEXT NOT NULL
);

-- Last analysis run per (user, source), written even for empty batches
CREATE TABLE IF NOT EXISTS analysis_runs (
    user_id       TEXT NOT NULL,
    source        TEXT NOT NULL,
    batch_id      TEXT NOT NULL,
    last_run_at   TEXT NOT NULL,
    insight_count INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, source)
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Indexes for window queries
CREATE INDEX IF NOT EXISTS idx_metrics_user_time  ON health_metrics(user_id, recorded_at);
CREATE INDEX IF NOT EXISTS idx_metrics_type       ON health_metrics(user_id, source, metric_type);
CREATE INDEX IF NOT EXISTS idx_logs_user_time     ON manual_logs(user_id, logged_at);
CREATE INDEX IF NOT EXISTS idx_food_user_time     ON food_entries(user_id, logged_at);
CREATE INDEX IF NOT EXISTS idx_events_user_time   ON calendar_events(user_id, start_time);
CREATE INDEX IF NOT EXISTS idx_meds_user_time     ON medication_logs(user_id, logged_at);
CREATE INDEX IF NOT EXISTS idx_insights_batch     ON ai_insights(user_id, source, batch_id);
"""

# ---------------------------------------------------------------------------
# V2: Audit log + encrypted cycle entries
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    user_id         TEXT,
    tool_input_hash TEXT,
    privacy_mode    TEXT,
    llm_provider    TEXT,
    llm_disclosed   INTEGER DEFAULT 0,
    batch_id        TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE TABLE IF NOT EXISTS cycle_entries (
    id         TEXT PRIMARY KEY,
    user_id    TEXT NOT NULL,
    date       TEXT NOT NULL,
    entry_enc  TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (user_id, date)
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_user      ON audit_log(user_id);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class HealthDatabase:
    """SQLite database manager for the HealthHub shared store.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing. The connection is shared across
    worker threads (the aggregator queries sources via ``asyncio.to_thread``),
    so callers serialize access through :attr:`lock`.

    Usage::

        db = HealthDatabase(":memory:")
        db.initialize()
        with db.lock:
            db.connection.execute(...)
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        """Initialize database manager.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
        """
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self.lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file), check_same_thread=False)
        else:
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Health database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        conn.executescript(_SCHEMA_V1)

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        current_version = row[0] if row[0] is not None else 0

        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log, cycle_entries")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        cursor = self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Health database closed")

    def __enter__(self) -> HealthDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
