"""Conversation state for multi-turn webhook chats.

This module provides the ConversationStore class for:
- Looking up or lazily creating a conversation per (customer, channel)
- Appending user and assistant turns
- Keeping the stored history to a rolling window
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import UTC, datetime
from typing import Any

from src.models import Conversation, ConversationMessage, MessageRole
from src.store.db import WebhookDB

MAX_CONTEXT_MESSAGES = 20


class ConversationNotFoundError(Exception):
    """Raised when updating a conversation id that does not exist."""

    pass


class ConversationStore:
    """Stores conversations in SQLite, one row per customer per channel.

    Updates are read-modify-write without transactional isolation; callers
    that need ordering serialize per conversation themselves.
    """

    def __init__(self, db: WebhookDB, max_messages: int = MAX_CONTEXT_MESSAGES) -> None:
        self._db = db
        self._max_messages = max_messages

    def get_or_create(self, customer_id: str, channel: str) -> Conversation:
        """Get the conversation for a customer on a channel, creating it if needed.

        Args:
            customer_id: Identifier extracted from the webhook body.
            channel: The webhook route the customer wrote through.

        Returns:
            The Conversation object.
        """
        existing = self.find(customer_id, channel)
        if existing is not None:
            return existing

        now = datetime.now(UTC).isoformat()
        conversation_id = str(uuid.uuid4())
        try:
            self._db.execute(
                """INSERT INTO conversations
                   (id, customer_id, channel, context_json, last_message_at, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (conversation_id, customer_id, channel, "{}", now, now),
            )
        except sqlite3.IntegrityError:
            # Another request created it between our read and insert
            raced = self.find(customer_id, channel)
            if raced is None:
                raise
            return raced

        return Conversation(
            id=conversation_id,
            customer_id=customer_id,
            channel=channel,
            context={},
            last_message_at=now,
            created_at=now,
        )

    def find(self, customer_id: str, channel: str) -> Conversation | None:
        row = self._db.fetch_one(
            "SELECT * FROM conversations WHERE customer_id = ? AND channel = ?",
            (customer_id, channel),
        )
        return self._row_to_conversation(row) if row else None

    def get(self, conversation_id: str) -> Conversation | None:
        row = self._db.fetch_one(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,),
        )
        return self._row_to_conversation(row) if row else None

    def update(
        self,
        conversation_id: str,
        user_message: str,
        assistant_reply: str | None,
    ) -> Conversation:
        """Append a turn and truncate history to the most recent messages.

        The context is re-read here rather than taken from the caller so a
        turn written by another request in the meantime is kept.

        Raises:
            ConversationNotFoundError: If conversation_id does not exist.
        """
        current = self.get(conversation_id)
        if current is None:
            raise ConversationNotFoundError(conversation_id)

        context: dict[str, Any] = dict(current.context)
        messages = list(current.messages)
        messages.append(
            ConversationMessage(role=MessageRole.USER, content=user_message).model_dump(mode="json")
        )
        if assistant_reply:
            messages.append(
                ConversationMessage(
                    role=MessageRole.ASSISTANT, content=assistant_reply,
                ).model_dump(mode="json")
            )
        context["messages"] = messages[-self._max_messages:]

        now = datetime.now(UTC).isoformat()
        self._db.execute(
            "UPDATE conversations SET context_json = ?, last_message_at = ? WHERE id = ?",
            (json.dumps(context), now, conversation_id),
        )
        return current.model_copy(update={"context": context, "last_message_at": now})

    def _row_to_conversation(self, row: dict[str, Any]) -> Conversation:
        context = json.loads(row["context_json"] or "{}")
        return Conversation(
            id=row["id"],
            customer_id=row["customer_id"],
            channel=row["channel"],
            context=context if isinstance(context, dict) else {},
            last_message_at=row["last_message_at"],
            created_at=row["created_at"],
        )
