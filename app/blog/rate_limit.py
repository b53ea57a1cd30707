"""
In-process sliding-window rate limiting.

State lives in this process only: with several gunicorn workers each worker
counts separately, so limits are per instance.
"""
from __future__ import annotations

import math
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import Request, current_app, jsonify, make_response, request


@dataclass(frozen=True)
class RateLimitInfo:
    allowed: bool
    limit: int
    remaining: int
    reset: int  # unix epoch milliseconds

    def retry_after_seconds(self, now: float | None = None) -> int:
        now_ms = (now if now is not None else time.time()) * 1000
        return max(0, math.ceil((self.reset - now_ms) / 1000))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


class SlidingWindowRateLimiter:
    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.time):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        # expired identifiers are swept at most this often
        self.sweep_interval = min(60.0, float(window_seconds))
        self._last_sweep = clock()

    def hit(self, identifier: str) -> RateLimitInfo:
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep >= self.sweep_interval:
                self._drop_expired(cutoff)
                self._last_sweep = now
            hits = self._hits.setdefault(identifier, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= self.max_requests:
                return RateLimitInfo(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset=_ms(hits[0] + self.window_seconds),
                )

            hits.append(now)
            return RateLimitInfo(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - len(hits),
                reset=_ms(hits[0] + self.window_seconds),
            )

    def clear(self, identifier: str) -> None:
        with self._lock:
            self._hits.pop(identifier, None)

    def prune(self) -> None:
        """Drop identifiers whose whole window has expired."""
        cutoff = self._clock() - self.window_seconds
        with self._lock:
            self._drop_expired(cutoff)

    def _drop_expired(self, cutoff: float) -> None:
        for key in [k for k, v in self._hits.items() if not v or v[-1] <= cutoff]:
            del self._hits[key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def _ms(ts: float) -> int:
    return int(ts * 1000)


# kind -> (max requests, window seconds); "global" comes from config
_FIXED_LIMITS = {
    "api": (30, 5 * 60),
    "auth": (5, 15 * 60),
}


def init_rate_limiters(app) -> None:
    """One limiter per kind, owned by the app (tests get fresh state per app)."""
    app.extensions["rate_limiters"] = {
        "global": SlidingWindowRateLimiter(
            int(app.config.get("RATE_LIMIT_MAX", 100)),
            int(app.config.get("RATE_LIMIT_WINDOW_SECONDS", 15 * 60)),
        ),
        **{kind: SlidingWindowRateLimiter(n, window) for kind, (n, window) in _FIXED_LIMITS.items()},
    }


def get_limiter(kind: str) -> SlidingWindowRateLimiter:
    limiters: dict[str, SlidingWindowRateLimiter] = current_app.extensions["rate_limiters"]
    try:
        return limiters[kind]
    except KeyError:
        raise ValueError(f"Unknown rate limiter: {kind!r}") from None


def reset_all() -> None:
    for limiter in current_app.extensions["rate_limiters"].values():
        limiter.reset()


def client_ip(req: Request) -> str:
    forwarded = (req.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    ip = (
        forwarded
        or (req.headers.get("X-Real-IP") or "").strip()
        or (req.headers.get("CF-Connecting-IP") or "").strip()
        or (req.remote_addr or "")
        or "127.0.0.1"
    )
    # stored in String(64) columns
    return ip[:64]


def client_identifier(req: Request) -> str:
    ip = client_ip(req)
    if current_app.config.get("IS_DEVELOPMENT"):
        # Several browsers behind one dev machine share an IP.
        ua = (req.headers.get("User-Agent") or "unknown")[:50]
        return f"{ip}-{ua}"
    return ip


def check_rate_limit(kind: str, identifier: str | None = None) -> RateLimitInfo:
    return get_limiter(kind).hit(identifier or client_identifier(request))


def rate_limited_response(info: RateLimitInfo):
    retry_after = info.retry_after_seconds()
    resp = make_response(
        jsonify(
            {
                "success": False,
                "error": "Rate limit exceeded",
                "message": "Too many requests. Please try again later.",
                "retryAfter": retry_after,
            }
        ),
        429,
    )
    resp.headers.update(info.headers())
    resp.headers["Retry-After"] = str(retry_after)
    return resp


def rate_limited(kind: str = "api") -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            info = check_rate_limit(kind)
            if not info.allowed:
                current_app.logger.warning("Rate limit exceeded (kind=%s, client=%s)", kind, client_ip(request))
                return rate_limited_response(info)
            resp = make_response(fn(*args, **kwargs))
            resp.headers.update(info.headers())
            return resp

        return wrapped

    return decorator
