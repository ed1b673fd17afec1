"""
Edge Module
===========

HTTP edge concerns shared by every route.

Components:
    - RateLimiter: Fixed-window per-client request limiter
    - EdgeMiddleware: Security headers, rate limiting, Server-Timing
"""

from proctor_agent.edge.rate_limiter import (
    RateLimitDecision,
    RateLimitEntry,
    RateLimiter,
)
from proctor_agent.edge.middleware import (
    SECURITY_HEADERS,
    EdgeMiddleware,
    client_address,
)

__all__ = [
    "EdgeMiddleware",
    "RateLimitDecision",
    "RateLimitEntry",
    "RateLimiter",
    "SECURITY_HEADERS",
    "client_address",
]
