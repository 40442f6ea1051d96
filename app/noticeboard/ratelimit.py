"""
Moving-window rate limiting keyed by (bucket, client ip), on top of ``limits``.

The limiter lives on the app (``app.extensions["rate_limiter"]``) so each app
instance, and each test app, has its own counters. The default ``memory://``
storage is per worker process; point RATE_LIMIT_STORAGE_URI at redis to share
counters between workers.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import Flask, current_app, request
from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

from app.noticeboard.errors import RateLimitError
from app.noticeboard.utils import client_ip


@dataclass(frozen=True)
class Limit:
    max_requests: int
    window_seconds: int
    message: str = "Too many requests, please try again later"

    @property
    def item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(self.max_requests, self.window_seconds)


class RateLimiter:
    def __init__(self, limits: dict[str, Limit], *, enabled: bool = True, storage_uri: str = "memory://"):
        self.limits = limits
        self.enabled = enabled
        self._strategy = MovingWindowRateLimiter(storage_from_string(storage_uri))

    def hit(self, bucket: str, key: str) -> None:
        """Count one request; raise RateLimitError when the bucket is already full."""
        if not self.enabled:
            return
        limit = self.limits[bucket]
        if self._strategy.hit(limit.item, bucket, key):
            return
        stats = self._strategy.get_window_stats(limit.item, bucket, key)
        retry_after = max(1, int(stats.reset_time - time.time()) + 1)
        raise RateLimitError(limit.message, retry_after=retry_after)

    def reset(self, bucket: str, key: str) -> None:
        self._strategy.clear(self.limits[bucket].item, bucket, key)

    def remaining(self, bucket: str, key: str) -> int:
        return self._strategy.get_window_stats(self.limits[bucket].item, bucket, key).remaining


def init_rate_limiter(app: Flask) -> RateLimiter:
    window = int(app.config.get("RATE_LIMIT_WINDOW", 900))
    limiter = RateLimiter(
        {
            "api": Limit(int(app.config.get("RATE_LIMIT_MAX", 100)), window),
            "auth": Limit(
                int(app.config.get("AUTH_RATE_LIMIT_MAX", 5)),
                window,
                "Too many login attempts, please try again later",
            ),
            "upload": Limit(10, 5 * 60, "Too many uploads, please try again later"),
            "search": Limit(20, 60, "Too many search requests, please try again later"),
            "admin": Limit(30, 60, "Too many admin operations, please slow down"),
        },
        enabled=bool(app.config.get("RATE_LIMIT_ENABLED", True)),
        storage_uri=app.config.get("RATE_LIMIT_STORAGE_URI") or "memory://",
    )
    app.extensions["rate_limiter"] = limiter
    return limiter


def limiter() -> RateLimiter:
    return current_app.extensions["rate_limiter"]


def rate_limit(bucket: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            limiter().hit(bucket, client_ip())
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def api_rate_limit_guard() -> None:
    """before_request hook: global request cap for every /api/ call."""
    if request.path.startswith("/api/") and request.method != "OPTIONS":
        limiter().hit("api", client_ip())
