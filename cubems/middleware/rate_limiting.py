"""
Rate Limiting Middleware
========================

In-memory sliding-window rate limiter keyed by signed-in user. Limits depend
on the user's subscription tier (see ``AppConfig.rate_limit_for``). State is
per process; distributed limiting is not attempted.

Usage:
    from cubems.middleware.rate_limiting import rate_limited

    @patterns_api.post("/detect")
    @api_login_required("Please sign in to use pattern detection")
    @rate_limited("patterns/detect")
    def detect_patterns():
        ...
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable

from flask import Flask, Response, current_app, g

from cubems.security.auth import current_tier, current_username
from cubems.utils.http import error_response

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    enabled: bool = True
    window_seconds: int = 3600
    cleanup_interval: int = 300  # clean old entries every 5 minutes


class RateLimiter:
    """
    Sliding-window rate limiter.

    Thread-safe and memory-bounded: keys with no requests inside the window
    are dropped on the periodic cleanup.
    """

    def __init__(self, config: RateLimitConfig | None = None, *, clock: Callable[[], float] = time.time):
        self.config = config or RateLimitConfig()
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.RLock()
        self._clock = clock
        self._last_cleanup = clock()

    def is_allowed(self, key: str, max_requests: int, window_seconds: int | None = None) -> tuple[bool, int, float]:
        """
        Check if request is allowed within rate limit.

        Args:
            key: Client identifier (user id plus endpoint scope)
            max_requests: Maximum requests allowed in window
            window_seconds: Time window in seconds (defaults to the configured window)

        Returns:
            Tuple of (allowed: bool, remaining: int, reset_time: float)
        """
        window_seconds = window_seconds or self.config.window_seconds
        now = self._clock()
        window_start = now - window_seconds

        with self._lock:
            if now - self._last_cleanup > self.config.cleanup_interval:
                self._cleanup_old_entries(window_start)
                self._last_cleanup = now

            requests = self._requests[key]
            requests[:] = [ts for ts in requests if ts > window_start]

            current_count = len(requests)
            reset_time = requests[0] + window_seconds if requests else now + window_seconds

            if current_count >= max_requests:
                return (False, 0, reset_time)

            requests.append(now)
            return (True, max(0, max_requests - current_count - 1), reset_time)

    def _cleanup_old_entries(self, window_start: float) -> None:
        keys_to_remove = []
        for key, timestamps in self._requests.items():
            timestamps[:] = [ts for ts in timestamps if ts > window_start]
            if not timestamps:
                keys_to_remove.append(key)

        for key in keys_to_remove:
            del self._requests[key]

        if keys_to_remove:
            logger.debug("Rate limiter cleanup: removed %s stale entries", len(keys_to_remove))

    def rate_limit_response(self, reset_time: float) -> Response:
        """429 response with ``Retry-After``."""
        retry_after = max(1, int(reset_time - self._clock()))
        response = error_response(
            "Rate limit exceeded",
            status=429,
            message="Too many requests. Please try again later.",
            details={"retry_after": retry_after},
        )
        response.headers["Retry-After"] = str(retry_after)
        return response

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            active_clients = len(self._requests)
            total_tracked = sum(len(ts) for ts in self._requests.values())

        return {
            "enabled": self.config.enabled,
            "active_clients": active_clients,
            "total_tracked_requests": total_tracked,
            "window_seconds": self.config.window_seconds,
        }


def rate_limited(scope: str) -> Callable:
    """
    Apply the tier-based limit of the signed-in user to a route.

    Must sit below ``api_login_required`` so the session user is known.
    """

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def wrapped(*args, **kwargs):
            container = current_app.config["CONTAINER"]
            limiter: RateLimiter = container.rate_limiter
            if not limiter.config.enabled:
                return f(*args, **kwargs)

            user = current_username() or "anonymous"
            tier = current_tier()
            limit = container.config.rate_limit_for(tier)

            allowed, remaining, reset_time = limiter.is_allowed(f"{scope}:{user}", max_requests=limit)

            g.rate_limit_limit = limit
            g.rate_limit_remaining = remaining
            g.rate_limit_reset = reset_time

            if not allowed:
                logger.warning("Rate limit exceeded for %s (%s tier) on %s", user, tier, scope)
                return limiter.rate_limit_response(reset_time)

            return f(*args, **kwargs)

        return wrapped

    return decorator


def init_rate_limit_headers(app: Flask) -> None:
    """Emit ``X-RateLimit-*`` headers on every rate-limited response."""

    @app.after_request
    def add_rate_limit_headers(response: Response) -> Response:
        if hasattr(g, "rate_limit_remaining"):
            response.headers["X-RateLimit-Limit"] = str(g.rate_limit_limit)
            response.headers["X-RateLimit-Remaining"] = str(g.rate_limit_remaining)
            response.headers["X-RateLimit-Reset"] = str(int(g.rate_limit_reset))
        return response
