"""Service configuration read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.webhook.routes import WebhookRoute


class ServiceConfigurationError(Exception):
    """Raised when environment values cannot form a usable configuration."""

    pass


class ServiceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    db_path: str | None = None
    webhook_secret: str | None = None
    route_secrets: dict[str, str] = Field(default_factory=dict)
    assistant_url: str | None = None
    assistant_api_key: str | None = None
    assistant_timeout_seconds: float = Field(default=60.0, gt=0)
    datadog_webhook_secret: str | None = None
    rate_limit: int = Field(default=60, ge=1)
    rate_window_seconds: int = Field(default=60, ge=1)
    rate_limit_db_path: str | None = None
    log_level: str = "INFO"

    def secret_for(self, route: WebhookRoute) -> str | None:
        """Per-route secret, falling back to the shared webhook secret."""
        return self.route_secrets.get(route.value) or self.webhook_secret

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServiceConfig:
        env = os.environ if environ is None else environ

        def get(*names: str) -> str | None:
            for name in names:
                value = env.get(name)
                if value:
                    return value
            return None

        assistant_url = get("ASSISTANT_URL", "BEAUTY_ASSISTANT_URL")
        supabase_url = get("SUPABASE_URL")
        if assistant_url is None and supabase_url:
            assistant_url = f"{supabase_url.rstrip('/')}/functions/v1/beauty-assistant"

        route_secrets = {
            route.value: secret
            for route in WebhookRoute
            if (secret := get(f"WEBHOOK_SECRET_{route.value.upper()}"))
        }

        try:
            return cls(
                db_path=get("WEBHOOK_DB_PATH"),
                webhook_secret=get("WEBHOOK_SECRET"),
                route_secrets=route_secrets,
                assistant_url=assistant_url,
                assistant_api_key=get("ASSISTANT_API_KEY", "SUPABASE_ANON_KEY"),
                assistant_timeout_seconds=get("ASSISTANT_TIMEOUT_SECONDS") or 60.0,
                datadog_webhook_secret=get("DATADOG_WEBHOOK_SECRET"),
                rate_limit=get("WEBHOOK_RATE_LIMIT") or 60,
                rate_window_seconds=get("WEBHOOK_RATE_WINDOW_SECONDS") or 60,
                rate_limit_db_path=get("RATE_LIMIT_DB_PATH"),
                log_level=(get("LOG_LEVEL") or "INFO").upper(),
            )
        except ValidationError as exc:
            raise ServiceConfigurationError(str(exc)) from exc
