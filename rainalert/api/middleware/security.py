"""HTTP middleware for the sensor and dashboard API.

Provides:
- Request ID middleware (X-Request-ID header)
- Per-client rate limiting, so a misbehaving sensor cannot flood ingest
- Response security headers
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from rainalert.api.version import API_VERSION
from rainalert.core.config import get_settings

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id, echoed back as X-Request-ID."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add standard security headers and the API version to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        settings = get_settings()
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        response.headers["X-API-Version"] = API_VERSION
        if not settings.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


@dataclass
class _ClientWindow:
    count: int = 0
    window_start: float = 0.0


# Tracked clients before stale windows are pruned.
_MAX_TRACKED_CLIENTS = 10_000
_PRUNE_INTERVAL = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window, per-IP request limiter.

    Limits each client to ``max_requests`` per ``window_seconds`` and answers
    429 with Retry-After once exceeded. State is per process.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_requests: int = 600,
        window_seconds: int = 60,
    ) -> None:
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clients: dict[str, _ClientWindow] = defaultdict(_ClientWindow)
        self._since_prune = 0

    def _prune_stale(self, now: float) -> None:
        stale = [ip for ip, w in self._clients.items() if now - w.window_start >= self.window_seconds]
        for ip in stale:
            del self._clients[ip]

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # X-Forwarded-For is not trusted.
        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()

        self._since_prune += 1
        if self._since_prune >= _PRUNE_INTERVAL or len(self._clients) > _MAX_TRACKED_CLIENTS:
            self._prune_stale(now)
            self._since_prune = 0

        window = self._clients[client_ip]
        if now - window.window_start >= self.window_seconds:
            window.count = 0
            window.window_start = now
        window.count += 1

        if window.count > self.max_requests:
            retry_after = max(int(self.window_seconds - (now - window.window_start)), 1)
            logger.warning("Rate limit exceeded for %s on %s", client_ip, request.url.path)
            return Response(
                content='{"success":false,"message":"Rate limit exceeded"}',
                status_code=429,
                media_type="application/json",
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.max_requests - window.count))
        return response
