"""Fixed window rate limiter for webhook endpoints.

Counters are keyed by source IP. The backing store is injectable: process
memory by default, or a SQLite table shared by workers on the same host.
Neither survives a multi-host deployment; limits are advisory.
"""

from __future__ import annotations

import logging
import math
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class RateLimitCounter:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    limited: bool
    retry_after_seconds: int | None = None


class RateLimitStore(Protocol):
    def get(self, key: str) -> RateLimitCounter | None: ...

    def put(self, key: str, counter: RateLimitCounter) -> None: ...

    def purge_expired(self, now: float) -> int: ...


class InMemoryRateLimitStore:
    """Process-local counters. Lost on restart, not shared across instances."""

    def __init__(self) -> None:
        self._counters: dict[str, RateLimitCounter] = {}

    def __len__(self) -> int:
        return len(self._counters)

    def get(self, key: str) -> RateLimitCounter | None:
        return self._counters.get(key)

    def put(self, key: str, counter: RateLimitCounter) -> None:
        self._counters[key] = counter

    def purge_expired(self, now: float) -> int:
        stale = [k for k, c in self._counters.items() if c.reset_at <= now]
        for key in stale:
            del self._counters[key]
        return len(stale)


class SQLiteRateLimitStore:
    """Counters in a SQLite table, shared by every worker using the same file."""

    def __init__(self, db_path: str) -> None:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(
            """CREATE TABLE IF NOT EXISTS rate_limit_counters (
                key TEXT PRIMARY KEY,
                count INTEGER NOT NULL,
                reset_at REAL NOT NULL
            )"""
        )
        self._conn.commit()

    def get(self, key: str) -> RateLimitCounter | None:
        row = self._conn.execute(
            "SELECT count, reset_at FROM rate_limit_counters WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        return RateLimitCounter(count=row[0], reset_at=row[1])

    def put(self, key: str, counter: RateLimitCounter) -> None:
        self._conn.execute(
            """INSERT INTO rate_limit_counters (key, count, reset_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET
                 count=excluded.count, reset_at=excluded.reset_at""",
            (key, counter.count, counter.reset_at),
        )
        self._conn.commit()

    def purge_expired(self, now: float) -> int:
        cursor = self._conn.execute(
            "DELETE FROM rate_limit_counters WHERE reset_at <= ?", (now,)
        )
        self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        self._conn.close()


class WebhookRateLimiter:
    """Fixed window rate limiter per source IP.

    Default: 60 requests per 60 seconds per IP.
    """

    def __init__(
        self,
        max_requests: int = 60,
        window_seconds: int = 60,
        store: RateLimitStore | None = None,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._store: RateLimitStore = store or InMemoryRateLimitStore()
        self._next_sweep = 0.0

    def check(self, source_ip: str) -> RateLimitResult:
        """Count a request from ``source_ip`` and report whether it is limited.

        A store failure lets the request through.
        """
        now = time.time()
        try:
            # Idle IPs are dropped once per window so the table stays bounded
            if now >= self._next_sweep:
                self._store.purge_expired(now)
                self._next_sweep = now + self._window_seconds

            counter = self._store.get(source_ip)

            if counter is None or now >= counter.reset_at:
                self._store.put(
                    source_ip,
                    RateLimitCounter(count=1, reset_at=now + self._window_seconds),
                )
                return RateLimitResult(limited=False)

            if counter.count >= self._max_requests:
                retry_after = max(1, math.ceil(counter.reset_at - now))
                return RateLimitResult(limited=True, retry_after_seconds=retry_after)

            counter.count += 1
            self._store.put(source_ip, counter)
            return RateLimitResult(limited=False)
        except sqlite3.Error:
            logger.warning("Rate limit store unavailable; allowing %s", source_ip, exc_info=True)
            return RateLimitResult(limited=False)

    def purge_expired(self) -> int:
        """Drop counters whose window has closed."""
        return self._store.purge_expired(time.time())
