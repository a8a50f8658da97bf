"""Webhook processing pipeline.

Runs the stages that follow request validation, in order:
1. Idempotency lookup under a per-(route, event id) lock (cached reply
   short-circuits everything below)
2. Customer id and message extraction for the route
3. Conversation lookup or creation
4. Assistant reply generation
5. Conversation update
6. Event log append

Every failure degrades to a neutral reply. The caller always
gets a result to send back with HTTP 200, since a non-2xx status makes the
sender retry and duplicate whatever side effects already happened.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
import weakref
from typing import TYPE_CHECKING

from src.store.conversations import ConversationNotFoundError
from src.webhook.idempotency import IdempotencyGuard
from src.webhook.models import FALLBACK_REPLY, ProcessResult, WebhookEvent
from src.webhook.routes import extractor_for

if TYPE_CHECKING:
    from src.assistant.client import ReplyGenerator
    from src.models import Conversation
    from src.store.conversations import ConversationStore
    from src.store.events import EventLog

logger = logging.getLogger(__name__)

NO_MESSAGE_REPLY = "No message to process"
NO_MESSAGE_ERROR = "No message found in webhook body"
PROCESSING_FAILED = "Webhook processing failed"


class WebhookPipeline:
    """Orchestrates dedup, conversation state, reply generation and logging."""

    def __init__(
        self,
        event_log: EventLog,
        reply_generator: ReplyGenerator,
        conversations: ConversationStore | None = None,
    ) -> None:
        self._event_log = event_log
        self._idempotency = IdempotencyGuard(event_log)
        self._generator = reply_generator
        self._conversations = conversations
        self._locks: weakref.WeakValueDictionary[tuple[str, ...], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def process(self, event: WebhookEvent) -> ProcessResult:
        """Run the pipeline for a validated event. Never raises."""
        started = time.monotonic()

        try:
            if event.event_id is None:
                return await self._process(event, started)
            # A retry arriving while the first delivery is in flight waits
            # here, then finds the logged record
            async with self._lock_for("event", event.route.value, event.event_id):
                cached = self._idempotency.lookup(event.event_id, event.route)
                if cached is not None:
                    return cached.to_result()
                return await self._process(event, started)
        except Exception as exc:
            logger.exception(
                "Webhook processing error (route=%s, event_id=%s)",
                event.route.value, event.event_id,
            )
            self._event_log.append(event, None, str(exc) or PROCESSING_FAILED, _elapsed_ms(started))
            return ProcessResult(reply=FALLBACK_REPLY, logged=False, error=PROCESSING_FAILED)

    async def _process(self, event: WebhookEvent, started: float) -> ProcessResult:
        extractor = extractor_for(event.route)
        customer_id = extractor.customer_id(event.body)
        message = extractor.message(event.body)

        if message is None:
            logged = self._event_log.append(event, None, NO_MESSAGE_ERROR, _elapsed_ms(started))
            return ProcessResult(reply=NO_MESSAGE_REPLY, logged=logged)

        if customer_id is None or self._conversations is None:
            return await self._reply_and_log(event, message, None, started)

        # Serializes turns for one customer within this process only
        async with self._lock_for("customer", event.route.value, customer_id):
            return await self._reply_and_log(event, message, customer_id, started)

    async def _reply_and_log(
        self,
        event: WebhookEvent,
        message: str,
        customer_id: str | None,
        started: float,
    ) -> ProcessResult:
        store = self._conversations
        conversation: Conversation | None = None
        if store is not None and customer_id is not None:
            conversation = self._resolve_conversation(store, customer_id, event.route.value)

        ai_result = await self._generator.generate(
            message, conversation.context if conversation else None,
        )
        result = ProcessResult(
            reply=ai_result.reply if ai_result else FALLBACK_REPLY,
            concern_slug=ai_result.concern_slug if ai_result else None,
            conversation_id=conversation.id if conversation else None,
        )

        if store is not None and conversation is not None:
            self._record_turn(store, conversation.id, message, result.reply)

        result.logged = self._event_log.append(event, result, None, _elapsed_ms(started))
        return result

    @staticmethod
    def _resolve_conversation(
        store: ConversationStore, customer_id: str, channel: str,
    ) -> Conversation | None:
        try:
            return store.get_or_create(customer_id, channel)
        except sqlite3.Error:
            logger.exception("Failed to get or create conversation for %s/%s", channel, customer_id)
            return None

    @staticmethod
    def _record_turn(
        store: ConversationStore, conversation_id: str, message: str, reply: str | None,
    ) -> None:
        try:
            store.update(conversation_id, message, reply)
        except (sqlite3.Error, ConversationNotFoundError):
            logger.exception("Failed to update conversation %s", conversation_id)

    def _lock_for(self, *key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
