"""Click CLI for signing test webhooks and inspecting stored state."""

from __future__ import annotations

import json
import sys
import time
from typing import BinaryIO

import click
import httpx

from src.store.conversations import ConversationStore
from src.store.db import WebhookDB
from src.store.events import EventLog
from src.webhook.signature import sign_body


def sample_datadog_alert() -> dict[str, object]:
    """A payload shaped like a Datadog monitor alert."""
    return {
        "alert_type": "error",
        "title": "High Memory Usage Alert",
        "body": "Memory usage has exceeded 90% on production server",
        "date_happened": int(time.time()),
        "priority": "normal",
        "tags": ["env:production", "service:web-server"],
        "aggregation_key": "memory-usage-alert",
        "alert_transition": "triggered",
        "alert_id": 12345,
        "event_type": "monitor_alert",
    }


@click.group()
@click.option("--db", default="data/webhooks.db", envvar="WEBHOOK_DB_PATH",
              help="Webhook database path.")
@click.pass_context
def cli(ctx: click.Context, db: str) -> None:
    """Storefront webhook service CLI."""
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db


def _open_db(ctx: click.Context) -> WebhookDB:
    db = WebhookDB(ctx.obj["db_path"])
    ctx.call_on_close(db.close)
    return db


@cli.command()
@click.argument("body_file", type=click.File("rb"))
@click.option("--secret", required=True, envvar="WEBHOOK_SECRET", help="Shared HMAC secret.")
@click.option("--prefix", is_flag=True, help="Prepend the sha256= algorithm prefix.")
def sign(body_file: BinaryIO, secret: str, prefix: bool) -> None:
    """Print the signature header value for a raw request body."""
    click.echo(sign_body(body_file.read(), secret, prefix=prefix))


@cli.command("send-test")
@click.argument("url")
@click.option("--secret", required=True, envvar="DATADOG_WEBHOOK_SECRET",
              help="Datadog webhook secret.")
@click.option("--invalid", is_flag=True, help="Send an all-zero signature instead.")
def send_test(url: str, secret: str, invalid: bool) -> None:
    """POST a sample Datadog alert and check the endpoint's answer."""
    body = json.dumps(sample_datadog_alert()).encode()
    signature = "0" * 64 if invalid else sign_body(body, secret, prefix=True)

    try:
        resp = httpx.post(
            url,
            content=body,
            headers={"Content-Type": "application/json", "DD-Signature": signature},
            timeout=30.0,
        )
    except httpx.HTTPError as exc:
        click.echo(f"Error sending webhook: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Response status: {resp.status_code}")
    click.echo(resp.text)

    expected = 401 if invalid else 200
    if resp.status_code != expected:
        click.echo(f"Expected status {expected}", err=True)
        sys.exit(1)


@cli.group("events")
def events_group() -> None:
    """Inspect the webhook event log."""


@events_group.command("list")
@click.option("--route", default=None, help="Only events for this route.")
@click.option("--limit", default=20, show_default=True, help="Maximum records.")
@click.pass_context
def events_list(ctx: click.Context, route: str | None, limit: int) -> None:
    """List recent event records, newest first."""
    records = EventLog(_open_db(ctx)).recent(limit=limit, route=route)
    click.echo(json.dumps([r.model_dump(mode="json") for r in records], indent=2))


@cli.group("conversations")
def conversations_group() -> None:
    """Inspect stored conversations."""


@conversations_group.command("show")
@click.argument("customer_id")
@click.argument("channel")
@click.pass_context
def conversations_show(ctx: click.Context, customer_id: str, channel: str) -> None:
    """Show the conversation for a customer on a channel."""
    conversation = ConversationStore(_open_db(ctx)).find(customer_id, channel)
    if conversation is None:
        click.echo(f"No conversation for {customer_id} on {channel}", err=True)
        sys.exit(1)
    click.echo(conversation.model_dump_json(indent=2))
