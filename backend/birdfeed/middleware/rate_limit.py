"""
Bird Feed Backend — Rate Limiting Middleware
=============================================

What:  Per-IP sliding-window rate limiter with one budget per tier.
How:   Each (client IP, tier) pair keeps the timestamps of its requests in
       the current window. Over budget → 429 with Retry-After. Every
       limited response carries X-RateLimit-Limit / -Remaining / -Reset.

Tiers (requests per RATE_LIMIT_WINDOW, from settings):
    sync     POST /api/haikubox/sync,         (5)
             POST /api/species/refresh
    upload   POST /api/upload, /api/upload/*  (10)
    write    other POST/PUT/PATCH/DELETE      (20)
    read     GET/HEAD under /api              (100)
    default  everything else                  (60)

State is in-process memory: fine for a single uvicorn worker. Multiple
workers each keep their own counters.
"""

import logging
import math
import time
from collections import defaultdict
from typing import Dict, List, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from birdfeed.config import settings
from birdfeed.exceptions import RateLimitExceededError
from birdfeed.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

READ_METHODS = {"GET", "HEAD"}
SYNC_PATHS = {"/api/haikubox/sync", "/api/species/refresh"}


def classify_request(method: str, path: str) -> str:
    """Rate-limit tier for a request."""
    method = method.upper()
    if method == "POST" and path.rstrip("/") in SYNC_PATHS:
        return "sync"
    if method == "POST" and (path == "/api/upload" or path.startswith("/api/upload/")):
        return "upload"
    if path.startswith("/api/"):
        return "read" if method in READ_METHODS else "write"
    return "default"


def client_ip_of(request: Request) -> str:
    """First X-Forwarded-For hop when behind the proxy, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        self._seen = 0

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if (
            not settings.rate_limit_enabled
            or request.method == "OPTIONS"
            or request.url.path in self.EXCLUDED_PATHS
        ):
            return await call_next(request)

        tier = classify_request(request.method, request.url.path)
        limit = settings.rate_limits[tier]
        window = settings.rate_limit_window
        key = (client_ip_of(request), tier)

        now = time.time()
        window_start = now - window
        timestamps = [ts for ts in self._requests[key] if ts > window_start]
        self._requests[key] = timestamps

        if len(timestamps) >= limit:
            reset_at = timestamps[0] + window
            retry_after = max(1, math.ceil(reset_at - now))
            logger.warning(
                "Rate limit exceeded for %s on %s tier: %d requests in %ds",
                key[0],
                tier,
                len(timestamps),
                window,
            )
            error = RateLimitExceededError(retry_after=retry_after, context={"tier": tier})
            response = JSONResponse(
                status_code=error.status_code,
                content={
                    "error": error.error_code,
                    "message": error.message,
                    "details": error.context,
                    "request_id": request_id_var.get("") or None,
                },
                headers={"Retry-After": str(retry_after)},
            )
            self._set_headers(response, limit, 0, reset_at)
            return response

        timestamps.append(now)
        self._seen += 1
        if self._seen % 1000 == 0:
            self._cleanup_inactive(window_start)

        response = await call_next(request)
        self._set_headers(response, limit, limit - len(timestamps), timestamps[0] + window)
        return response

    @staticmethod
    def _set_headers(response: Response, limit: int, remaining: int, reset_at: float) -> None:
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))
        response.headers["X-RateLimit-Reset"] = str(math.ceil(reset_at))

    def _cleanup_inactive(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for key in inactive:
            del self._requests[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate-limit entries", len(inactive))
