"""Duplicate delivery protection for webhook events.

Senders deliver at least once. A caller-supplied event id, scoped to the
route, is looked up in the event log; a hit is answered from the stored
reply without calling the assistant or touching the conversation again.

Requests without an event id are always processed.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from src.store.events import EventLog
from src.webhook.models import ProcessResult
from src.webhook.routes import WebhookRoute

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "x-idempotency-key"
_ALREADY_PROCESSED = "Request already processed"


def extract_event_id(body: Any, headers: dict[str, str]) -> str | None:
    """Return ``event_id``, then ``id`` from the body, then the header value."""
    if isinstance(body, dict):
        for key in ("event_id", "id"):
            value = body.get(key)
            if isinstance(value, bool) or value is None or value == "":
                continue
            if isinstance(value, (str, int)):
                return str(value)
    return headers.get(IDEMPOTENCY_HEADER) or None


@dataclass(frozen=True)
class CachedReply:
    reply: str | None
    concern_slug: str | None

    def to_result(self) -> ProcessResult:
        return ProcessResult(
            reply=self.reply or _ALREADY_PROCESSED,
            concern_slug=self.concern_slug,
            logged=True,
            cached=True,
        )


class IdempotencyGuard:
    """Looks up earlier deliveries of the same (event id, route)."""

    def __init__(self, event_log: EventLog) -> None:
        self._event_log = event_log

    def lookup(self, event_id: str | None, route: WebhookRoute) -> CachedReply | None:
        """Return the stored reply for a duplicate, or None to process fresh.

        A store failure is treated as a miss.
        """
        if not event_id:
            return None
        try:
            record = self._event_log.find(event_id, route.value)
        except sqlite3.Error:
            logger.warning(
                "Idempotency lookup failed for %s/%s; processing anyway",
                route.value, event_id, exc_info=True,
            )
            return None
        if record is None:
            return None
        logger.info("Duplicate delivery %s/%s served from event log", route.value, event_id)
        return CachedReply(reply=record.ai_reply, concern_slug=record.concern_slug)
