"""Shared Pydantic data models for the storefront webhook service."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class EventStatus(str, Enum):
    PROCESSED = "processed"
    ERROR = "error"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


# --- Conversation Models ---


class ConversationMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
    timestamp: str = Field(default_factory=_now_iso)


class Conversation(BaseModel):
    id: str
    customer_id: str
    channel: str
    context: dict[str, Any] = Field(default_factory=dict)
    last_message_at: str
    created_at: str

    @property
    def messages(self) -> list[dict[str, Any]]:
        messages = self.context.get("messages")
        return messages if isinstance(messages, list) else []


# --- Event Log Models ---


class PersistedEventRecord(BaseModel):
    """One immutable audit row of the webhook event log."""

    model_config = ConfigDict(frozen=True)

    id: int
    event_id: str | None = None
    route: str
    source_ip: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    signature_valid: bool
    conversation_id: str | None = None
    ai_reply: str | None = None
    concern_slug: str | None = None
    status: EventStatus
    error_message: str | None = None
    processing_time_ms: int = Field(ge=0)
    created_at: str


# --- Datadog Models ---


class DatadogAlert(BaseModel):
    """Subset of the Datadog webhook payload we keep in the alert log."""

    model_config = ConfigDict(extra="allow")

    title: str | None = None
    body: str | None = None
    alert_type: str | None = None
    priority: str | None = None
    date_happened: int | str | None = None
    tags: list[str] | str | None = None
