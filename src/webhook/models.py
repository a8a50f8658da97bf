"""Data models for the webhook processing pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from src.webhook.routes import WebhookRoute

FALLBACK_REPLY = (
    "Thank you for your message! Our beauty consultant will assist you shortly."
)


@dataclass
class WebhookEvent:
    """One inbound webhook request, after parsing and validation."""

    route: WebhookRoute
    body: Any
    source_ip: str = "unknown"
    headers: dict[str, str] = field(default_factory=dict)
    event_id: str | None = None
    signature_valid: bool = True


@dataclass
class ProcessResult:
    """Pipeline outcome, serialized as the JSON body returned to the sender."""

    reply: str
    logged: bool = False
    concern_slug: str | None = None
    conversation_id: str | None = None
    cached: bool = False
    error: str | None = None

    def to_response(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"reply": self.reply, "logged": self.logged}
        if self.concern_slug is not None:
            payload["concern_slug"] = self.concern_slug
        if self.conversation_id is not None:
            payload["conversationId"] = self.conversation_id
        if self.cached:
            payload["cached"] = True
        if self.error is not None:
            payload["error"] = self.error
        return payload
