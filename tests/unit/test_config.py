"""Tests for environment-driven service configuration."""

from __future__ import annotations

import pytest

from src.config import ServiceConfig, ServiceConfigurationError
from src.webhook.routes import WebhookRoute


def test_defaults_from_empty_env() -> None:
    config = ServiceConfig.from_env({})
    assert config.db_path is None
    assert config.assistant_url is None
    assert config.rate_limit == 60
    assert config.rate_window_seconds == 60
    assert config.assistant_timeout_seconds == 60.0
    assert config.log_level == "INFO"


def test_reads_values() -> None:
    config = ServiceConfig.from_env({
        "WEBHOOK_DB_PATH": "/tmp/w.db",
        "WEBHOOK_SECRET": "shared",
        "ASSISTANT_URL": "http://assistant.local/reply",
        "ASSISTANT_API_KEY": "key",
        "ASSISTANT_TIMEOUT_SECONDS": "12.5",
        "WEBHOOK_RATE_LIMIT": "10",
        "LOG_LEVEL": "debug",
    })
    assert config.db_path == "/tmp/w.db"
    assert config.assistant_url == "http://assistant.local/reply"
    assert config.assistant_api_key == "key"
    assert config.assistant_timeout_seconds == 12.5
    assert config.rate_limit == 10
    assert config.log_level == "DEBUG"


def test_supabase_aliases() -> None:
    config = ServiceConfig.from_env({
        "SUPABASE_URL": "https://proj.supabase.co/",
        "SUPABASE_ANON_KEY": "anon",
    })
    assert config.assistant_url == "https://proj.supabase.co/functions/v1/beauty-assistant"
    assert config.assistant_api_key == "anon"


def test_explicit_assistant_url_wins_over_supabase() -> None:
    config = ServiceConfig.from_env({
        "BEAUTY_ASSISTANT_URL": "http://explicit/",
        "SUPABASE_URL": "https://proj.supabase.co",
    })
    assert config.assistant_url == "http://explicit/"


def test_route_secret_overrides_shared() -> None:
    config = ServiceConfig.from_env({
        "WEBHOOK_SECRET": "shared",
        "WEBHOOK_SECRET_MANYCHAT": "mc",
    })
    assert config.secret_for(WebhookRoute.MANYCHAT) == "mc"
    assert config.secret_for(WebhookRoute.GORGIAS) == "shared"


def test_no_secrets() -> None:
    assert ServiceConfig.from_env({}).secret_for(WebhookRoute.GENERIC) is None


@pytest.mark.parametrize("env", [
    {"WEBHOOK_RATE_LIMIT": "lots"},
    {"WEBHOOK_RATE_LIMIT": "0"},
    {"ASSISTANT_TIMEOUT_SECONDS": "-1"},
])
def test_invalid_values_raise(env: dict[str, str]) -> None:
    with pytest.raises(ServiceConfigurationError):
        ServiceConfig.from_env(env)
