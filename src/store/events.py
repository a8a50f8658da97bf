"""Append-only webhook event log.

Every request that passes validation leaves exactly one record, on success
or failure. Records are never updated; the only reader besides operators is
the idempotency lookup.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from src.models import EventStatus, PersistedEventRecord
from src.store.db import WebhookDB

if TYPE_CHECKING:
    from src.webhook.models import ProcessResult, WebhookEvent

logger = logging.getLogger(__name__)


class EventLog:
    """SQLite-backed store for the ``webhook_events`` table."""

    def __init__(self, db: WebhookDB) -> None:
        self._db = db

    def append(
        self,
        event: WebhookEvent,
        result: ProcessResult | None,
        error: str | None,
        processing_time_ms: int,
    ) -> bool:
        """Persist one record. Returns False instead of raising on failure."""
        try:
            self._db.execute(
                """INSERT INTO webhook_events
                   (event_id, route, source_ip, headers_json, body_json,
                    signature_valid, conversation_id, ai_reply, concern_slug,
                    status, error_message, processing_time_ms, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event.event_id,
                    event.route.value,
                    event.source_ip,
                    json.dumps(event.headers),
                    json.dumps(event.body),
                    int(event.signature_valid),
                    result.conversation_id if result else None,
                    result.reply if result else None,
                    result.concern_slug if result else None,
                    (EventStatus.ERROR if error else EventStatus.PROCESSED).value,
                    error,
                    max(0, processing_time_ms),
                    datetime.now(UTC).isoformat(),
                ),
            )
        except Exception:
            logger.exception(
                "Failed to log webhook event (route=%s, event_id=%s)",
                event.route.value, event.event_id,
            )
            return False
        return True

    def find(self, event_id: str, route: str) -> PersistedEventRecord | None:
        row = self._db.fetch_one(
            "SELECT * FROM webhook_events WHERE event_id = ? AND route = ?",
            (event_id, route),
        )
        return self._row_to_record(row) if row else None

    def recent(self, limit: int = 20, route: str | None = None) -> list[PersistedEventRecord]:
        if route is None:
            rows = self._db.fetch_all(
                "SELECT * FROM webhook_events ORDER BY id DESC LIMIT ?", (limit,),
            )
        else:
            rows = self._db.fetch_all(
                "SELECT * FROM webhook_events WHERE route = ? ORDER BY id DESC LIMIT ?",
                (route, limit),
            )
        return [self._row_to_record(row) for row in rows]

    def count(self) -> int:
        row = self._db.fetch_one("SELECT COUNT(*) AS n FROM webhook_events")
        return int(row["n"]) if row else 0

    @staticmethod
    def _row_to_record(row: dict[str, Any]) -> PersistedEventRecord:
        return PersistedEventRecord(
            id=row["id"],
            event_id=row["event_id"],
            route=row["route"],
            source_ip=row["source_ip"],
            headers=json.loads(row["headers_json"]),
            body=json.loads(row["body_json"]),
            signature_valid=bool(row["signature_valid"]),
            conversation_id=row["conversation_id"],
            ai_reply=row["ai_reply"],
            concern_slug=row["concern_slug"],
            status=EventStatus(row["status"]),
            error_message=row["error_message"],
            processing_time_ms=row["processing_time_ms"],
            created_at=row["created_at"],
        )
