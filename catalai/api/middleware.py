"""
API Middleware.

Request ID injection, per-client rate limiting, and a structured log
line for every incoming API request.
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Callable, Iterable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from catalai.config import get_settings
from catalai.logging_config import conversation_id_var, generate_trace_id, get_logger, trace_id_var

logger = get_logger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Inject a unique request ID into every request and response.

    Clients may also send ``X-Conversation-ID`` so request logs can be
    joined with the turn they belong to.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID", generate_trace_id())
        trace_id_var.set(request_id)
        conversation_id = request.headers.get("X-Conversation-ID")
        if conversation_id:
            conversation_id_var.set(conversation_id)

        start = time.monotonic()
        response = await call_next(request)
        elapsed_ms = round((time.monotonic() - start) * 1000, 1)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = str(elapsed_ms)

        logger.info(
            "api_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limiter per client (in-memory, single instance).

    Limits come from ``RATE_LIMIT_WINDOW_SECONDS`` and
    ``RATE_LIMIT_MAX_REQUESTS`` unless passed explicitly.
    Clients are keyed by peer address. X-Forwarded-For is only read when
    the peer is listed in ``TRUSTED_PROXIES``.
    """

    def __init__(
        self,
        app: ASGIApp,
        window_seconds: int | None = None,
        max_requests: int | None = None,
        trusted_proxies: Iterable[str] | None = None,
    ) -> None:
        super().__init__(app)
        settings = get_settings()
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self.max_requests = max_requests or settings.rate_limit_max_requests
        self.trusted_proxies = frozenset(
            settings.trusted_proxies if trusted_proxies is None else trusted_proxies
        )
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._last_sweep = time.monotonic()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        client = self.client_key(request)
        now = time.monotonic()
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)

        hits = self._hits[client]
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

        if len(hits) >= self.max_requests:
            logger.warning("rate_limit_exceeded", client=client, path=request.url.path)
            return JSONResponse(
                {"error": "Rate limit exceeded"},
                status_code=429,
                headers={"Retry-After": str(self.window_seconds)},
            )

        hits.append(now)
        return await call_next(request)

    def client_key(self, request: Request) -> str:
        """
        Peer address, or the hop our proxy appended to X-Forwarded-For
        when the peer is a trusted proxy. Client-supplied hops are ignored.
        """
        peer = request.client.host if request.client else "unknown"
        if peer not in self.trusted_proxies:
            return peer
        forwarded = request.headers.get("X-Forwarded-For", "")
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        return hops[-1] if hops else peer

    def _sweep(self, now: float) -> None:
        stale = [
            key for key, hits in self._hits.items()
            if not hits or now - hits[-1] >= self.window_seconds
        ]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now
