"""Webhook route resolution and per-sender field extraction.

Each known sender posts a differently shaped JSON body. A route selects one
``FieldExtractor`` that knows where that sender puts the customer identifier
and the message text, with a fallback path for each.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class WebhookRoute(str, Enum):
    GORGIAS = "gorgias"
    MANYCHAT = "manychat"
    GENERIC = "generic"


def resolve_route(
    query_value: str | None, header_value: str | None = None,
) -> WebhookRoute:
    """Pick the route from ``?route=`` first, then ``x-webhook-route``.

    Absent or unknown values fall back to generic instead of being rejected.
    """
    raw = query_value or header_value or WebhookRoute.GENERIC.value
    try:
        return WebhookRoute(raw.strip().lower())
    except ValueError:
        return WebhookRoute.GENERIC


FieldPath = tuple[str, ...]


def _dig(body: Any, path: FieldPath) -> Any:
    node = body
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _as_text(value: Any) -> str | None:
    # bool is an int subclass; a flag is never an identifier or a message
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and value:
        return value
    return None


@dataclass(frozen=True)
class FieldExtractor:
    """Primary and fallback JSON paths for one sender's payload shape."""

    route: WebhookRoute
    customer_paths: tuple[FieldPath, ...]
    message_paths: tuple[FieldPath, ...]

    def customer_id(self, body: Any) -> str | None:
        return self._first(body, self.customer_paths)

    def message(self, body: Any) -> str | None:
        return self._first(body, self.message_paths)

    @staticmethod
    def _first(body: Any, paths: tuple[FieldPath, ...]) -> str | None:
        for path in paths:
            value = _as_text(_dig(body, path))
            if value is not None:
                return value
        return None


_EXTRACTORS: dict[WebhookRoute, FieldExtractor] = {
    WebhookRoute.GORGIAS: FieldExtractor(
        route=WebhookRoute.GORGIAS,
        customer_paths=(("customer", "id"), ("ticket", "customer", "id")),
        message_paths=(("message", "body_text"), ("text",)),
    ),
    WebhookRoute.MANYCHAT: FieldExtractor(
        route=WebhookRoute.MANYCHAT,
        customer_paths=(("user_id",), ("subscriber", "id")),
        message_paths=(("message", "text"), ("text",)),
    ),
    WebhookRoute.GENERIC: FieldExtractor(
        route=WebhookRoute.GENERIC,
        customer_paths=(("customer_id",), ("user_id",)),
        message_paths=(("message",), ("text",)),
    ),
}


def extractor_for(route: WebhookRoute) -> FieldExtractor:
    return _EXTRACTORS[route]
