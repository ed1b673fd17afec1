"""
Edge Middleware
===============

Request filter in front of every HTTP route.

Responsibilities:
    1. Security headers on every response
    2. Per-client rate limiting for paths under the API prefix
    3. Server-Timing header with the total handling time

WebSocket traffic is not an HTTP request scope and passes through
untouched.
"""

import logging
import time
from typing import Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from proctor_agent.edge.rate_limiter import RateLimiter


logger = logging.getLogger(__name__)


# Fallback when the transport does not expose a peer address
DEFAULT_CLIENT_ADDRESS = "127.0.0.1"

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "script-src 'self' 'unsafe-inline' 'unsafe-eval'",
    "style-src 'self' 'unsafe-inline'",
    "img-src 'self' blob: data:",
    "media-src 'self' blob:",
    "connect-src 'self' wss://generativelanguage.googleapis.com https://generativelanguage.googleapis.com",
    "frame-ancestors 'none'",
    "form-action 'self'",
    "base-uri 'self'",
])

SECURITY_HEADERS: Dict[str, str] = {
    "X-DNS-Prefetch-Control": "on",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "origin-when-cross-origin",
    "Permissions-Policy": "camera=(self), microphone=(self), geolocation=()",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
}


def client_address(request: Request, trust_forwarded_for: bool = False) -> str:
    """
    Identify the caller for rate limiting.

    Args:
        request: Incoming request
        trust_forwarded_for: Use the first X-Forwarded-For hop when present
            (only behind a proxy that sets it)
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first

    if request.client and request.client.host:
        return request.client.host
    return DEFAULT_CLIENT_ADDRESS


class EdgeMiddleware(BaseHTTPMiddleware):
    """
    Security headers and rate limiting for HTTP routes.

    Attributes:
        rate_limiter: Shared limiter (None disables limiting)
        route_prefix: Paths starting with this are rate limited
        trust_forwarded_for: Whether X-Forwarded-For identifies the client
    """

    def __init__(
        self,
        app: ASGIApp,
        rate_limiter: Optional[RateLimiter] = None,
        route_prefix: str = "/api/",
        trust_forwarded_for: bool = False,
    ) -> None:
        super().__init__(app)
        self.rate_limiter = rate_limiter
        self.route_prefix = route_prefix
        self.trust_forwarded_for = trust_forwarded_for

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        limit_headers: Dict[str, str] = {}

        if self.rate_limiter is not None and request.url.path.startswith(self.route_prefix):
            key = client_address(request, self.trust_forwarded_for)
            decision = self.rate_limiter.hit(key)
            limit_headers = decision.headers()

            if not decision.allowed:
                logger.warning(
                    f"Rate limit exceeded for {key} on {request.url.path} "
                    f"(retry after {decision.retry_after}s)"
                )
                response: Response = JSONResponse(
                    {"error": "Too many requests", "retryAfter": decision.retry_after},
                    status_code=429,
                    headers={"Retry-After": str(decision.retry_after)},
                )
                return self._finish(response, limit_headers, start)

        response = await call_next(request)
        return self._finish(response, limit_headers, start)

    def _finish(self, response: Response, limit_headers: Dict[str, str], start: float) -> Response:
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        for name, value in limit_headers.items():
            response.headers[name] = value

        if "server-timing" not in response.headers:
            elapsed_ms = round((time.perf_counter() - start) * 1000)
            response.headers["Server-Timing"] = f"total;dur={elapsed_ms}"
        return response
