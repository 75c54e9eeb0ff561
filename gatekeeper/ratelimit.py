"""
gatekeeper/ratelimit.py -- Fixed-window rate limiter with an injected store.

Algorithm (per key):
  - No entry, or the entry's window has ended (reset <= now): start a fresh
    window with count=0 and reset = now + window_ms.
  - Increment count.
  - success = count <= max; remaining = max(0, max - count).

This is an approximate limiter: a client can spend its full quota at the end
of one window and again at the start of the next, so up to 2x max requests may
land inside any window_ms-long interval. In exchange every check is O(1) and
memory is one small entry per active key.

Concurrency contract: RateLimitStore guards every read-modify-write with one
threading.Lock. FastAPI runs sync handlers on a thread pool, so the event-loop
"no preemption" argument does not hold here. sweep() takes the same lock and
only deletes entries whose window already ended; a key re-created right after
is simply swept one cycle later.

All timestamps are epoch milliseconds. The clock is injectable for tests:
    limiter = FixedWindowRateLimiter(clock=lambda: fake_now_ms)
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

UNKNOWN_CLIENT = "unknown"


def _now_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class RateLimitConfig:
    max: int = 100
    window_ms: int = 60_000
    prefix: str = "rate_limit"


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: int  # epoch ms at which the current window ends

    def retry_after(self, now_ms: float) -> int:
        """Whole seconds until the window resets, rounded up, never negative."""
        return max(0, math.ceil((self.reset - now_ms) / 1000))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


class RateLimitStore:
    """Lock-guarded map of key -> [count, reset_ms]."""

    def __init__(self) -> None:
        self._entries: dict[str, list] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, window_ms: int, now_ms: float) -> tuple[int, int]:
        """Count one request against key. Returns (count, reset_ms) after the increment."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry[1] <= now_ms:
                entry = [0, int(now_ms + window_ms)]
                self._entries[key] = entry
            entry[0] += 1
            return entry[0], entry[1]

    def sweep(self, now_ms: float) -> int:
        """Delete every entry whose window has ended. Returns how many were removed."""
        with self._lock:
            expired = [key for key, (_, reset) in self._entries.items() if reset <= now_ms]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def get(self, key: str) -> tuple[int, int] | None:
        with self._lock:
            entry = self._entries.get(key)
            return (entry[0], entry[1]) if entry is not None else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class FixedWindowRateLimiter:
    """Applies RateLimitConfig quotas against a RateLimitStore.

    Usage:
        limiter = FixedWindowRateLimiter()
        result = limiter.check("api:203.0.113.9", RateLimitConfig(max=100, window_ms=60_000))
        if not result.success:
            ...  # 429 with Retry-After = result.retry_after(limiter.now())
    """

    def __init__(self, store: RateLimitStore | None = None, clock: Callable[[], float] = _now_ms) -> None:
        self.store = store if store is not None else RateLimitStore()
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        key = f"{config.prefix}:{identifier}"
        count, reset = self.store.hit(key, config.window_ms, self.now())
        return RateLimitResult(
            success=count <= config.max,
            limit=config.max,
            remaining=max(0, config.max - count),
            reset=reset,
        )

    def sweep(self) -> int:
        return self.store.sweep(self.now())


def client_identity(headers: Mapping[str, str]) -> str:
    """Derive the rate-limit identity of a client from proxy headers.

    First X-Forwarded-For entry, then X-Real-IP, then the shared sentinel
    "unknown". All clients without proxy headers share the sentinel's bucket,
    so stripping the headers never buys a fresh quota.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return UNKNOWN_CLIENT
