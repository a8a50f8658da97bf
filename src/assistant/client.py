"""Completion backend client for webhook replies.

Forwards the conversation history plus the new customer message to the
beauty assistant and returns a single reply string. The backend answers
either with one JSON object or with a server-sent-event token stream; both
are read through the same ``ReplySource`` interface.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

_SSE_DATA_PREFIX = "data:"
_SSE_DONE = "[DONE]"
_DEFAULT_JSON_REPLY = "I'm here to help!"


@dataclass(frozen=True)
class ReplyResult:
    reply: str
    concern_slug: str | None = None
    streamed: bool = False


class ReplySource(Protocol):
    async def read(self, response: httpx.Response) -> ReplyResult | None: ...


class SingleShotReply:
    """A JSON body carrying the whole reply."""

    async def read(self, response: httpx.Response) -> ReplyResult | None:
        raw = await response.aread()
        if not raw.strip():
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.error("Assistant returned a non-JSON body")
            return None
        if not isinstance(data, dict):
            return None

        reply = data.get("reply") or data.get("message") or _choice_content(data, "message")
        concern = data.get("concern_slug")
        return ReplyResult(
            reply=reply if isinstance(reply, str) and reply else _DEFAULT_JSON_REPLY,
            concern_slug=concern if isinstance(concern, str) and concern else None,
        )


class StreamedReply:
    """An SSE token stream; content deltas are concatenated in arrival order."""

    async def read(self, response: httpx.Response) -> ReplyResult | None:
        parts: list[str] = []
        async for line in response.aiter_lines():
            if not line.startswith(_SSE_DATA_PREFIX):
                continue
            data = line[len(_SSE_DATA_PREFIX):].strip()
            if data == _SSE_DONE:
                break
            try:
                fragment = json.loads(data)
            except ValueError:
                continue
            content = _choice_content(fragment, "delta")
            if content:
                parts.append(content)

        reply = "".join(parts).strip()
        if not reply:
            return None
        return ReplyResult(reply=reply, streamed=True)


def _choice_content(data: Any, key: str) -> str | None:
    """Return ``choices[0][key].content`` from an OpenAI-style payload."""
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    part = choices[0].get(key)
    if not isinstance(part, dict):
        return None
    content = part.get("content")
    return content if isinstance(content, str) else None


def build_turns(message: str, context: dict[str, Any] | None) -> list[dict[str, str]]:
    """Prior context messages as ``{role, content}`` followed by the new message."""
    turns: list[dict[str, str]] = []
    history = (context or {}).get("messages")
    if isinstance(history, list):
        for entry in history:
            if not isinstance(entry, dict):
                continue
            role, content = entry.get("role"), entry.get("content")
            if role in ("user", "assistant") and isinstance(content, str):
                turns.append({"role": role, "content": content})
    turns.append({"role": "user", "content": message})
    return turns


class ReplyGenerator:
    """Calls the completion backend. Never raises; failures return None."""

    def __init__(
        self,
        url: str | None,
        api_key: str | None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def generate(
        self, message: str, context: dict[str, Any] | None = None,
    ) -> ReplyResult | None:
        if not self._url or not self._api_key:
            logger.error("Assistant URL or API key not configured")
            return None

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        payload = {"messages": build_turns(message, context)}

        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout,
            ) as client:
                async with client.stream(
                    "POST", self._url, json=payload, headers=headers,
                ) as response:
                    if not response.is_success:
                        body = await response.aread()
                        logger.error(
                            "Assistant returned error: %s %s",
                            response.status_code,
                            body[:500].decode(errors="replace"),
                        )
                        return None
                    return await self._source_for(response).read(response)
        except (httpx.HTTPError, httpx.StreamError):
            logger.exception("Failed to get assistant reply")
            return None

    @staticmethod
    def _source_for(response: httpx.Response) -> ReplySource:
        content_type = response.headers.get("content-type", "")
        if "text/event-stream" in content_type:
            return StreamedReply()
        return SingleShotReply()
