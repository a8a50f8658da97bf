"""Shared test fixtures for the storefront webhook service."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from src.assistant.client import ReplyGenerator
from src.store.conversations import ConversationStore
from src.store.db import WebhookDB
from src.store.events import EventLog
from src.webhook.models import WebhookEvent
from src.webhook.routes import WebhookRoute

ASSISTANT_URL = "http://assistant.test/functions/v1/beauty-assistant"


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "webhooks.db")


@pytest.fixture
def webhook_db(db_path: str):
    db = WebhookDB(db_path)
    yield db
    db.close()


@pytest.fixture
def event_log(webhook_db: WebhookDB) -> EventLog:
    return EventLog(webhook_db)


@pytest.fixture
def conversation_store(webhook_db: WebhookDB) -> ConversationStore:
    return ConversationStore(webhook_db)


# --- Factory functions for test data ---


def make_webhook_event(**kwargs: Any) -> WebhookEvent:
    """Factory for WebhookEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "route": WebhookRoute.GENERIC,
        "body": {"customer_id": "c1", "message": "hello"},
        "source_ip": "203.0.113.7",
        "headers": {"content-type": "application/json"},
        "event_id": None,
    }
    defaults.update(kwargs)
    return WebhookEvent(**defaults)


def json_reply_handler(
    payload: dict[str, Any], status_code: int = 200,
) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)

    return handler


def sse_reply_handler(
    deltas: list[str], extra_lines: list[str] | None = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """Backend answering with an SSE stream of OpenAI-style content deltas."""

    def handler(request: httpx.Request) -> httpx.Response:
        lines = [
            f"data: {json.dumps({'choices': [{'delta': {'content': d}}]})}\n\n"
            for d in deltas
        ]
        lines.extend(extra_lines or [])
        lines.append("data: [DONE]\n\n")
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content="".join(lines).encode(),
        )

    return handler


def make_reply_generator(
    handler: Callable[[httpx.Request], httpx.Response],
    api_key: str | None = "anon-key",
) -> ReplyGenerator:
    return ReplyGenerator(ASSISTANT_URL, api_key, transport=httpx.MockTransport(handler))
