"""
Rate limiter — fixed window, keyed by "{prefix}:{identifier}".

Limits (per IP, per minute, independently namespaced):
  - track:     100
  - create:    10
  - analytics: 30
  - export:    5

Best-effort, single-process guard. Counters live in a RateLimitStore;
the default MemoryRateLimitStore is process-local, so a restart resets
every window and separate instances do not share counts. It is not a
security boundary. Back the store with a shared key-value service for
multi-instance correctness.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from fastapi import Request

from linkpulse.config import get_settings
from linkpulse.core.request_info import HeaderMap, get_client_ip
from linkpulse.errors import RateLimitExceeded

import structlog

logger = structlog.get_logger()

SWEEP_INTERVAL_SECONDS = 300


@dataclass(frozen=True)
class RateLimitConfig:
    limit: int
    window_seconds: int
    prefix: str = "default"


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_time: float  # epoch seconds


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float


class RateLimitStore(Protocol):
    def get(self, key: str) -> RateLimitEntry | None: ...

    def set(self, key: str, entry: RateLimitEntry) -> None: ...

    def sweep(self, now: float) -> int: ...

    def lock(self) -> threading.Lock: ...


class MemoryRateLimitStore:
    """Process-local store. One lock guards the map and the check-then-increment."""

    def __init__(self):
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> RateLimitEntry | None:
        return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._entries[key] = entry

    def sweep(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if now >= e.reset_time]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def lock(self) -> threading.Lock:
        return self._lock

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiter:
    def __init__(
        self,
        store: RateLimitStore | None = None,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ):
        self.store = store or MemoryRateLimitStore()
        self.clock = clock
        self.sweep_interval = sweep_interval
        self._last_sweep = clock()

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now
        removed = self.store.sweep(now)
        if removed:
            logger.debug("rate_limit_sweep", removed=removed)

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        key = f"{config.prefix}:{identifier}"

        with self.store.lock():
            now = self.clock()
            self._maybe_sweep(now)

            entry = self.store.get(key)
            if entry is None or now >= entry.reset_time:
                reset_time = now + config.window_seconds
                self.store.set(key, RateLimitEntry(count=1, reset_time=reset_time))
                return RateLimitResult(True, config.limit, config.limit - 1, reset_time)

            if entry.count >= config.limit:
                return RateLimitResult(False, config.limit, 0, entry.reset_time)

            entry.count += 1
            self.store.set(key, entry)
            return RateLimitResult(True, config.limit, config.limit - entry.count, entry.reset_time)

    def retry_after(self, result: RateLimitResult) -> int:
        return max(1, math.ceil(result.reset_time - self.clock()))


class RateLimits:
    """Per-endpoint presets, sized from settings."""

    @staticmethod
    def track() -> RateLimitConfig:
        s = get_settings()
        return RateLimitConfig(s.rate_limit_track_per_window, s.rate_limit_window_seconds, "track")

    @staticmethod
    def create_url() -> RateLimitConfig:
        s = get_settings()
        return RateLimitConfig(s.rate_limit_create_per_window, s.rate_limit_window_seconds, "create")

    @staticmethod
    def analytics() -> RateLimitConfig:
        s = get_settings()
        return RateLimitConfig(s.rate_limit_analytics_per_window, s.rate_limit_window_seconds, "analytics")

    @staticmethod
    def export() -> RateLimitConfig:
        s = get_settings()
        return RateLimitConfig(s.rate_limit_export_per_window, s.rate_limit_window_seconds, "export")


_limiter = RateLimiter()


def get_rate_limiter() -> RateLimiter:
    """FastAPI dependency — the process-wide limiter."""
    return _limiter


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_time)),
    }


def client_ip(request: Request) -> str:
    peer = request.client.host if request.client else None
    return get_client_ip(HeaderMap.of(request.headers), peer)


def enforce_rate_limit(
    request: Request,
    config: RateLimitConfig,
    limiter: RateLimiter | None = None,
) -> RateLimitResult:
    """Check the caller's IP; raise 429 with retry hint + headers when over."""
    limiter = limiter or _limiter
    result = limiter.check(client_ip(request), config)
    if not result.success:
        retry_after = limiter.retry_after(result)
        logger.info("rate_limited", prefix=config.prefix, retry_after=retry_after)
        raise RateLimitExceeded(
            "Too many requests. Please try again later.",
            retry_after=retry_after,
            headers=rate_limit_headers(result),
        )
    return result
