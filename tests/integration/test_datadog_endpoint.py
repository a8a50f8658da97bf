"""Integration tests for the Datadog webhook endpoint."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from src.cli import sample_datadog_alert
from src.config import ServiceConfig
from src.server.app import create_app
from src.store.alerts import DatadogAlertLog
from src.webhook.signature import sign_body

PATH = "/datadog-webhook"
SECRET = "dd-secret"


def _make_app(tmp_path: Path | None = None, **kwargs: Any) -> Any:
    config_kwargs: dict[str, Any] = {"datadog_webhook_secret": SECRET}
    if tmp_path is not None:
        config_kwargs["db_path"] = str(tmp_path / "webhooks.db")
    config_kwargs.update(kwargs)
    return create_app(ServiceConfig(**config_kwargs), reply_generator=MagicMock())


def _client(app: Any) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _alert_body() -> bytes:
    return json.dumps(sample_datadog_alert()).encode()


class TestDatadogWebhook:
    @pytest.mark.asyncio
    async def test_valid_signature_accepted(self, tmp_path: Path) -> None:
        app = _make_app(tmp_path)
        body = _alert_body()
        async with _client(app) as client:
            resp = await client.post(
                PATH, content=body, headers={"dd-signature": sign_body(body, SECRET, prefix=True)},
            )
        assert resp.status_code == 200
        assert resp.json() == {"status": "success", "message": "Webhook received and verified"}
        assert resp.headers["access-control-allow-origin"] == "*"

        alerts = DatadogAlertLog(app.state.db).recent()
        assert len(alerts) == 1
        assert alerts[0]["title"] == "High Memory Usage Alert"
        assert alerts[0]["payload"]["alert_id"] == 12345

    @pytest.mark.asyncio
    async def test_bare_hex_signature_accepted(self) -> None:
        body = _alert_body()
        async with _client(_make_app()) as client:
            resp = await client.post(
                PATH, content=body, headers={"dd-signature": sign_body(body, SECRET)},
            )
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_wrong_signature_401(self, tmp_path: Path) -> None:
        app = _make_app(tmp_path)
        async with _client(app) as client:
            resp = await client.post(
                PATH, content=_alert_body(), headers={"dd-signature": "0" * 64},
            )
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid signature"}
        assert DatadogAlertLog(app.state.db).recent() == []

    @pytest.mark.asyncio
    async def test_missing_signature_401(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.post(PATH, content=_alert_body())
        assert resp.status_code == 401
        assert resp.json() == {"error": "Missing signature"}

    @pytest.mark.asyncio
    async def test_invalid_json_with_valid_signature_400(self) -> None:
        body = b"not json at all"
        async with _client(_make_app()) as client:
            resp = await client.post(
                PATH, content=body, headers={"dd-signature": sign_body(body, SECRET)},
            )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid JSON"}

    @pytest.mark.asyncio
    async def test_unconfigured_secret_500(self) -> None:
        app = create_app(ServiceConfig(), reply_generator=MagicMock())
        async with _client(app) as client:
            resp = await client.post(PATH, content=_alert_body(), headers={"dd-signature": "x"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Webhook not configured"}

    @pytest.mark.asyncio
    async def test_non_post_405(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.get(PATH)
        assert resp.status_code == 405
        assert resp.json() == {"error": "Method not allowed"}

    @pytest.mark.asyncio
    async def test_preflight(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.options(PATH)
        assert resp.status_code == 200
        assert resp.content == b""
        assert "dd-signature" in resp.headers["access-control-allow-headers"]

    @pytest.mark.asyncio
    async def test_non_object_payload_accepted_without_storing(self, tmp_path: Path) -> None:
        app = _make_app(tmp_path)
        body = b'["not", "an", "alert"]'
        async with _client(app) as client:
            resp = await client.post(
                PATH, content=body, headers={"dd-signature": sign_body(body, SECRET)},
            )
        assert resp.status_code == 200
        assert DatadogAlertLog(app.state.db).recent() == []
