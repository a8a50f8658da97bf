"""FastAPI application exposing the webhook endpoints."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.assistant.client import ReplyGenerator
from src.config import ServiceConfig
from src.models import DatadogAlert
from src.server.cors_middleware import (
    DATADOG_WEBHOOK_CORS,
    PROCESS_WEBHOOK_CORS,
    CORSHeadersMiddleware,
)
from src.store.alerts import DatadogAlertLog
from src.store.conversations import ConversationStore
from src.store.db import WebhookDB
from src.store.events import EventLog
from src.webhook.idempotency import extract_event_id
from src.webhook.models import WebhookEvent
from src.webhook.pipeline import WebhookPipeline
from src.webhook.rate_limiter import SQLiteRateLimitStore, WebhookRateLimiter
from src.webhook.routes import resolve_route
from src.webhook.signature import verify_signature

logger = logging.getLogger(__name__)

PROCESS_WEBHOOK_PATH = "/process-webhook"
DATADOG_WEBHOOK_PATH = "/datadog-webhook"

_MAX_WEBHOOK_BODY_SIZE = 256 * 1024  # 256 KiB
_ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH"]


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    config = ServiceConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return create_app(config)


def create_app(
    config: ServiceConfig,
    reply_generator: ReplyGenerator | None = None,
    rate_limiter: WebhookRateLimiter | None = None,
) -> FastAPI:
    """Create the webhook FastAPI app.

    Without a database path the process-webhook endpoint answers 500 on
    every POST; the Datadog endpoint still works but keeps no alert log.
    """
    app = FastAPI(docs_url=None, redoc_url=None)

    db = WebhookDB(config.db_path) if config.db_path else None
    event_log = EventLog(db) if db else None
    alert_log = DatadogAlertLog(db) if db else None

    if reply_generator is None:
        reply_generator = ReplyGenerator(
            config.assistant_url,
            config.assistant_api_key,
            timeout=config.assistant_timeout_seconds,
        )
    pipeline = (
        WebhookPipeline(event_log, reply_generator, ConversationStore(db))
        if db and event_log
        else None
    )

    if rate_limiter is None:
        store = (
            SQLiteRateLimitStore(config.rate_limit_db_path)
            if config.rate_limit_db_path
            else None
        )
        rate_limiter = WebhookRateLimiter(
            max_requests=config.rate_limit,
            window_seconds=config.rate_window_seconds,
            store=store,
        )

    app.state.config = config
    app.state.db = db
    app.state.event_log = event_log
    app.state.rate_limiter = rate_limiter

    @app.get("/health")
    async def health() -> dict[str, str]:
        return _health_payload()

    @app.api_route(PROCESS_WEBHOOK_PATH, methods=_ALL_METHODS)
    async def process_webhook(request: Request) -> Response:
        if request.query_params.get("health") == "true":
            return JSONResponse(_health_payload())
        if request.method != "POST":
            return _error("Method not allowed", 405)
        if pipeline is None:
            logger.error("WEBHOOK_DB_PATH not configured")
            return _error("Service configuration error", 500)

        raw_body = await _read_limited(request, _MAX_WEBHOOK_BODY_SIZE)
        if raw_body is None:
            return _error("Request body too large (max 256 KB)", 400)

        try:
            body = json.loads(raw_body)
        except ValueError:
            return _error("Invalid JSON body", 400)

        route = resolve_route(
            request.query_params.get("route"),
            request.headers.get("x-webhook-route"),
        )
        source_ip = _source_ip(request)

        limit = rate_limiter.check(source_ip)
        if limit.limited:
            logger.warning("Rate limit exceeded for %s", source_ip)
            return JSONResponse(
                {"error": "Rate limit exceeded"},
                status_code=429,
                headers={"Retry-After": str(limit.retry_after_seconds or 60)},
            )

        secret = config.secret_for(route)
        signature = (
            request.headers.get("x-webhook-signature")
            or request.headers.get("authorization")
        )
        if secret and not verify_signature(raw_body, signature, secret):
            logger.warning("Invalid webhook signature (route=%s, ip=%s)", route.value, source_ip)
            return _error("Invalid signature", 401)

        headers = dict(request.headers)
        event = WebhookEvent(
            route=route,
            body=body,
            source_ip=source_ip,
            headers=headers,
            event_id=extract_event_id(body, headers),
            signature_valid=True,
        )
        result = await pipeline.process(event)
        return JSONResponse(result.to_response())

    @app.api_route(DATADOG_WEBHOOK_PATH, methods=_ALL_METHODS)
    async def datadog_webhook(request: Request) -> Response:
        if request.method != "POST":
            return _error("Method not allowed", 405)

        secret = config.datadog_webhook_secret
        if not secret:
            logger.error("DATADOG_WEBHOOK_SECRET not configured")
            return _error("Webhook not configured", 500)

        signature = request.headers.get("dd-signature")
        if not signature:
            logger.warning("Missing DD-Signature header")
            return _error("Missing signature", 401)

        raw_body = await request.body()
        if not verify_signature(raw_body, signature, secret):
            logger.warning("Invalid Datadog signature")
            return _error("Invalid signature", 401)

        try:
            payload = json.loads(raw_body)
        except ValueError:
            logger.warning("Invalid JSON in Datadog payload")
            return _error("Invalid JSON", 400)

        _record_alert(payload, alert_log)
        return JSONResponse(
            {"status": "success", "message": "Webhook received and verified"},
        )

    app.add_middleware(
        CORSHeadersMiddleware,
        path_headers={
            PROCESS_WEBHOOK_PATH: PROCESS_WEBHOOK_CORS,
            DATADOG_WEBHOOK_PATH: DATADOG_WEBHOOK_CORS,
        },
    )

    return app


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _health_payload() -> dict[str, str]:
    return {
        "status": "ok",
        "service": "process-webhook",
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _source_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    return first or request.headers.get("x-real-ip") or "unknown"


async def _read_limited(request: Request, limit: int) -> bytes | None:
    """Read the request body, giving up as soon as it exceeds ``limit`` bytes."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        return None

    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


def _record_alert(payload: Any, alert_log: DatadogAlertLog | None) -> None:
    if not isinstance(payload, dict):
        logger.info("Received valid Datadog webhook with non-object payload")
        return

    logger.info(
        "Received valid Datadog alert: title=%r alert_type=%s priority=%s tags=%s",
        payload.get("title"),
        payload.get("alert_type"),
        payload.get("priority"),
        payload.get("tags"),
    )
    if alert_log is None:
        return
    try:
        alert_log.append(DatadogAlert.model_validate(payload))
    except (sqlite3.Error, ValidationError):
        logger.exception("Failed to store Datadog alert")
