"""Persistence for the webhook service.

Event log, conversations and the Datadog alert log share one SQLite file.
"""

from src.store.alerts import DatadogAlertLog
from src.store.conversations import (
    MAX_CONTEXT_MESSAGES,
    ConversationNotFoundError,
    ConversationStore,
)
from src.store.db import WebhookDB
from src.store.events import EventLog

__all__ = [
    "ConversationNotFoundError",
    "ConversationStore",
    "DatadogAlertLog",
    "EventLog",
    "MAX_CONTEXT_MESSAGES",
    "WebhookDB",
]
