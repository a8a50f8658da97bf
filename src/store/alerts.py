"""Raw Datadog alert log."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from src.models import DatadogAlert
from src.store.db import WebhookDB


class DatadogAlertLog:
    def __init__(self, db: WebhookDB) -> None:
        self._db = db

    def append(self, alert: DatadogAlert) -> int:
        cursor = self._db.execute(
            """INSERT INTO datadog_alerts (title, alert_type, priority, payload_json, received_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                alert.title,
                alert.alert_type,
                alert.priority,
                alert.model_dump_json(),
                datetime.now(UTC).isoformat(),
            ),
        )
        return int(cursor.lastrowid or 0)

    def recent(self, limit: int = 20) -> list[dict[str, Any]]:
        rows = self._db.fetch_all(
            "SELECT * FROM datadog_alerts ORDER BY id DESC LIMIT ?", (limit,),
        )
        for row in rows:
            row["payload"] = json.loads(row.pop("payload_json"))
        return rows
