from __future__ import annotations

import threading
import time
from collections import defaultdict, deque

from fastapi import HTTPException, Request, status

MUTATION_WINDOW_SECONDS = 60
WS_COMMAND_WINDOW_SECONDS = 1


class SlidingWindowRateLimiter:
    """Per-key request budget over a sliding time window."""

    def __init__(self) -> None:
        self._storage: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def clear(self) -> None:
        with self._lock:
            self._storage.clear()

    def hit(self, key: str, max_requests: int, window_seconds: float) -> None:
        """Record one request for ``key``; raise 429 if the budget is spent."""
        now = time.monotonic()
        cutoff = now - window_seconds

        with self._lock:
            timestamps = self._storage[key]
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()

            if len(timestamps) >= max_requests:
                retry_after = max(1, int(window_seconds - (now - timestamps[0])))
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"Too many requests. Retry in {retry_after}s",
                    headers={"Retry-After": str(retry_after)},
                )

            timestamps.append(now)

    def forget(self, key: str) -> None:
        with self._lock:
            self._storage.pop(key, None)


rate_limiter = SlidingWindowRateLimiter()


def _get_client_identifier(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def mutation_rate_limit(request: Request) -> None:
    """Shared budget for every state-changing REST call of one client."""
    settings = request.app.state.settings
    rate_limiter.hit(
        f"mutations:{_get_client_identifier(request)}",
        max_requests=settings.mutation_rate_limit,
        window_seconds=MUTATION_WINDOW_SECONDS,
    )


def enforce_ws_rate_limit(connection_id: str, max_commands: int) -> None:
    rate_limiter.hit(
        f"ws:{connection_id}",
        max_requests=max_commands,
        window_seconds=WS_COMMAND_WINDOW_SECONDS,
    )
