"""Per-client request throttling for the Travault API.

A sliding one-minute window is kept per client address in process
memory, so each worker enforces its own budget. Health probes, metrics
and the API docs are never throttled. Over-limit requests get a 429 in
the standard ``{"success": false, "message": ...}`` envelope.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Final

import structlog
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_EXEMPT_PATHS: Final[frozenset[str]] = frozenset({
    "/api/v1/health",
    "/api/v1/health/ready",
    "/metrics",
    "/docs",
    "/redoc",
    "/openapi.json",
})

_WINDOW_SECONDS: Final[float] = 60.0
_SWEEP_EVERY: Final[int] = 1000


def client_ip(request: Request, trusted_proxy_count: int) -> str:
    """Best guess at the caller's address.

    With ``trusted_proxy_count = N`` the rightmost N ``X-Forwarded-For``
    entries belong to our proxies and the client is ``ips[-(N + 1)]``.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ips = [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]
        if ips:
            if trusted_proxy_count > 0 and trusted_proxy_count + 1 <= len(ips):
                return ips[-(trusted_proxy_count + 1)]
            return ips[0]

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class SlidingWindow:
    """Timestamps of recent hits for every key, trimmed on access."""

    __slots__ = ("_hits", "limit", "window")

    def __init__(self, limit: int, window: float = _WINDOW_SECONDS) -> None:
        self.limit = limit
        self.window = window
        self._hits: dict[str, deque[float]] = {}

    def hit(self, key: str, now: float) -> tuple[bool, int]:
        """Record a hit for *key*.

        Returns ``(allowed, value)`` where *value* is the remaining budget
        when allowed and the retry-after in seconds when not.
        """
        hits = self._hits.setdefault(key, deque())
        while hits and hits[0] <= now - self.window:
            hits.popleft()

        if len(hits) >= self.limit:
            return False, max(1, int(self.window - (now - hits[0])) + 1)

        hits.append(now)
        return True, self.limit - len(hits)

    def sweep(self, now: float) -> int:
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= now - self.window]
        for key in stale:
            del self._hits[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._hits)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: object,
        max_requests_per_minute: int = 120,
        trusted_proxy_count: int = 1,
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._windows = SlidingWindow(max_requests_per_minute)
        self._trusted_proxy_count = trusted_proxy_count
        self._lock = asyncio.Lock()
        self._seen = 0

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        ip = client_ip(request, self._trusted_proxy_count)
        now = time.monotonic()
        async with self._lock:
            self._seen += 1
            if self._seen % _SWEEP_EVERY == 0:
                removed = self._windows.sweep(now)
                if removed:
                    logger.debug("rate_limit.sweep", removed=removed)
            allowed, value = self._windows.hit(ip, now)

        limit = str(self._windows.limit)
        if not allowed:
            logger.warning("rate_limit.exceeded", client_ip=ip, path=request.url.path, limit=limit)
            return ORJSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "message": "Too many requests. Please try again later.",
                    "retry_after_seconds": value,
                },
                headers={
                    "Retry-After": str(value),
                    "X-RateLimit-Limit": limit,
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = limit
        response.headers["X-RateLimit-Remaining"] = str(value)
        return response
