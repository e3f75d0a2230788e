"""Per-IP fixed-window request limits held in process memory."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import HTTPException, Request, status

RATE_LIMIT_MESSAGE = "Too many requests. Please try again later."
SWEEP_INTERVAL_SECONDS = 5 * 60


@dataclass
class Window:
    count: int
    reset_at: float


class RateLimiter:
    """Count requests per key; a key's window restarts once it has expired."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Window] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + SWEEP_INTERVAL_SECONDS

    def hit(self, key: str) -> Optional[int]:
        """
        Record one request. Returns None when allowed, otherwise the number of
        seconds until the key's window resets.
        """
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep_locked(now)
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                self._windows[key] = Window(1, now + self.window_seconds)
                return None
            if window.count >= self.max_requests:
                return max(1, math.ceil(window.reset_at - now))
            window.count += 1
            return None

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, w in self._windows.items() if now >= w.reset_at]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + SWEEP_INTERVAL_SECONDS
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or "unknown"


def too_many_requests_body(retry_after: int) -> dict:
    return {"error": RATE_LIMIT_MESSAGE, "retryAfter": f"{retry_after} seconds"}


def rate_limit(limiter: RateLimiter) -> Callable[[Request], None]:
    """FastAPI dependency enforcing `limiter` for a single route."""

    def dependency(request: Request) -> None:
        retry_after = limiter.hit(client_ip(request))
        if retry_after is not None:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=too_many_requests_body(retry_after),
                headers={"Retry-After": str(retry_after)},
            )

    return dependency


api_limiter = RateLimiter(100)
suggest_limiter = RateLimiter(10)
generate_limiter = RateLimiter(20)
