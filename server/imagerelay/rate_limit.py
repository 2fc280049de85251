"""Per-client request cap for the public endpoints."""
from __future__ import annotations

import time
from typing import Callable

from fastapi import HTTPException
from starlette.requests import Request


class ClientRateLimiter:
    """Sliding-window limiter keyed by client IP; in-memory, per process."""

    def __init__(self, max_requests: int, window_seconds: float, *, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self.storage: dict[str, list[float]] = {}

    def check(self, request: Request) -> None:
        """Raise 429 once the caller exceeded its quota, otherwise record the hit."""

        now = self._clock()
        ip = request.client.host if request.client else "unknown"

        recent = [t for t in self.storage.pop(ip, ()) if now - t < self.window_seconds]
        if len(recent) >= self.max_requests:
            self.storage[ip] = recent
            raise HTTPException(
                status_code=429,
                detail="Too many requests, please try again later.",
            )
        recent.append(now)
        self.storage[ip] = recent
        self._sweep(now)

    def _sweep(self, now: float) -> None:
        """Forget clients whose hits all fell out of the window."""

        stale = [ip for ip, hits in self.storage.items() if not hits or now - hits[-1] >= self.window_seconds]
        for ip in stale:
            del self.storage[ip]
