"""ASGI middleware adding CORS headers to webhook endpoints."""

from __future__ import annotations

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

_BASE_ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type"

PROCESS_WEBHOOK_CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        f"{_BASE_ALLOW_HEADERS}, x-webhook-route, x-webhook-signature"
    ),
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}

DATADOG_WEBHOOK_CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": f"{_BASE_ALLOW_HEADERS}, dd-signature",
}


class CORSHeadersMiddleware:
    """Answers preflight requests and stamps CORS headers on every response.

    Unlike a browser-oriented CORS layer, any OPTIONS request on a configured
    path gets 200 with an empty body, whether or not it carries an Origin.
    """

    def __init__(
        self,
        app: ASGIApp,
        path_headers: dict[str, dict[str, str]],
    ) -> None:
        self.app = app
        self._path_headers = path_headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        cors = self._path_headers.get(request.url.path.rstrip("/") or "/")
        if cors is None:
            await self.app(scope, receive, send)
            return

        if request.method == "OPTIONS":
            response = Response(status_code=200, headers=cors)
            await response(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in cors.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)
