from __future__ import annotations

from collections import defaultdict, deque
from threading import Lock
import time
from typing import Deque

from fastapi import Request

from app.core.exceptions import RateLimitedError


class SlidingWindowLimiter:
    """Counts hits per key inside a trailing time window."""

    def __init__(self, clock=time.monotonic) -> None:
        self._hits: dict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()
        self._clock = clock

    def hit(self, key: str, *, limit: int, window_seconds: int) -> int | None:
        """Record a hit and return None, or the seconds to wait when the key is over its limit."""
        now = self._clock()
        with self._lock:
            hits = self._hits[key]
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return max(1, int(hits[0] + window_seconds - now))
            hits.append(now)
        return None

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


_limiter = SlidingWindowLimiter()


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_rate_limit(
    *,
    request: Request,
    scope: str,
    limit: int,
    window_seconds: int,
    identity: str | None = None,
) -> None:
    key = "|".join((scope, client_address(request), (identity or "").strip().lower()))
    retry_after = _limiter.hit(key, limit=limit, window_seconds=window_seconds)
    if retry_after is not None:
        raise RateLimitedError(scope, retry_after)


def clear_rate_limiter() -> None:
    _limiter.reset()
