"""SQLite database operations for the webhook service.

This module provides the WebhookDB class for persistent storage of:
- The append-only webhook event log
- Per-customer conversations
- Raw Datadog alerts
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

SCHEMA_SQL = """
-- Event log: one immutable row per processed webhook request
CREATE TABLE IF NOT EXISTS webhook_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT,
    route TEXT NOT NULL,
    source_ip TEXT,
    headers_json TEXT NOT NULL,
    body_json TEXT NOT NULL,
    signature_valid INTEGER NOT NULL,
    conversation_id TEXT,
    ai_reply TEXT,
    concern_slug TEXT,
    status TEXT NOT NULL,
    error_message TEXT,
    processing_time_ms INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

-- Idempotency keys are scoped to the route; NULL event ids never collide
CREATE UNIQUE INDEX IF NOT EXISTS idx_events_event_route
    ON webhook_events(event_id, route);

-- Conversations: one per customer per channel
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    customer_id TEXT NOT NULL,
    channel TEXT NOT NULL,
    context_json TEXT NOT NULL DEFAULT '{}',
    last_message_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (customer_id, channel)
);

-- Datadog alert log
CREATE TABLE IF NOT EXISTS datadog_alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT,
    alert_type TEXT,
    priority TEXT,
    payload_json TEXT NOT NULL,
    received_at TEXT NOT NULL
);
"""


class WebhookDB:
    """Single SQLite connection shared by the event log, conversations and alerts.

    The schema is created on open and the journal runs in WAL mode so a
    crashed worker never leaves a half-written event row behind.

    Calls are synchronous and run on the event loop thread of the async
    handlers; every statement is a single indexed read or write.
    TODO: move calls to a worker thread with anyio.to_thread if webhook
    volume makes event-loop stalls visible.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._initialize()

    @property
    def path(self) -> str:
        return self._db_path

    def _initialize(self) -> None:
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        # The ASGI server may run sync handlers in a threadpool
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        """Execute a SQL statement with parameters and commit.

        Args:
            sql: SQL statement with ? placeholders.
            params: Tuple of parameter values.

        Returns:
            The cursor after execution.
        """
        conn = self._connection()
        try:
            cursor = conn.execute(sql, params)
        except sqlite3.Error:
            conn.rollback()
            raise
        conn.commit()
        return cursor

    def fetch_one(self, sql: str, params: tuple[Any, ...] = ()) -> dict[str, Any] | None:
        """Fetch a single row as a dictionary, or None if no row matched."""
        row = self._connection().execute(sql, params).fetchone()
        if row is None:
            return None
        return dict(row)

    def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        """Fetch all rows as a list of dictionaries."""
        cursor = self._connection().execute(sql, params)
        return [dict(row) for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._conn

    def __enter__(self) -> WebhookDB:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()
