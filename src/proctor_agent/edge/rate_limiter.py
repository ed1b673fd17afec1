"""
Rate Limiter
============

Fixed-window, per-client request limiter for the /api surface.

Each client address owns one RateLimitEntry (count, reset_at). The first
request in a window creates it; requests are counted until the window
ends; once `now > reset_at` the entry is stale and is replaced, never
incremented. A background sweep evicts stale entries so the table only
holds recently active clients.

Design Rules:
    - Check-and-increment is atomic (guarded by a lock)
    - count never exceeds max_requests within a window
    - Timestamps are wall-clock epoch seconds (they are echoed to clients)
    - The sweeper is owned by the server lifespan (started/cancelled there)
"""

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    """
    Throttling state for one client address.

    Attributes:
        count: Requests seen in the current window
        reset_at: Epoch seconds when the window ends
    """

    count: int
    reset_at: float

    def expired(self, now: float) -> bool:
        """Whether the window has ended."""
        return now > self.reset_at


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """
    Outcome of one rate-limit check.

    Attributes:
        allowed: Whether the request may proceed
        limit: Configured maximum per window
        remaining: Requests left in the window
        reset_at: Epoch seconds when the window ends
        retry_after: Seconds until the window ends (0 when allowed)
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int = 0

    def headers(self) -> Dict[str, str]:
        """Informational headers sent with every matched response."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


class RateLimiter:
    """
    Per-key fixed-window request limiter.

    Attributes:
        max_requests: Requests allowed per key per window
        window_seconds: Window duration

    Example:
        limiter = RateLimiter(max_requests=100, window_seconds=60)

        decision = limiter.hit("203.0.113.7")
        if not decision.allowed:
            reject(retry_after=decision.retry_after)
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            max_requests: Requests allowed per window. Must be >= 1.
            window_seconds: Window duration in seconds. Must be > 0.
            clock: Wall-clock time source (epoch seconds)
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

        # Metrics
        self._allowed_count: int = 0
        self._rejected_count: int = 0
        self._evicted_count: int = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[RateLimitEntry]:
        """Current entry for a key (a copy), or None."""
        with self._lock:
            entry = self._entries.get(key)
            return RateLimitEntry(entry.count, entry.reset_at) if entry else None

    def hit(self, key: str) -> RateLimitDecision:
        """
        Count one request for a key.

        Args:
            key: Client identifier (network address)

        Returns:
            RateLimitDecision; retry_after is set when rejected
        """
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is None or entry.expired(now):
                entry = RateLimitEntry(count=1, reset_at=now + self.window_seconds)
                self._entries[key] = entry
            elif entry.count >= self.max_requests:
                self._rejected_count += 1
                retry_after = max(1, math.ceil(entry.reset_at - now))
                return RateLimitDecision(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_at=entry.reset_at,
                    retry_after=retry_after,
                )
            else:
                entry.count += 1

            self._allowed_count += 1
            return RateLimitDecision(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - entry.count,
                reset_at=entry.reset_at,
            )

    def sweep(self) -> int:
        """
        Evict every entry whose window has ended.

        Returns:
            Number of entries evicted.
        """
        with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in stale:
                del self._entries[key]
            self._evicted_count += len(stale)

        if stale:
            logger.debug(f"Rate limiter sweep evicted {len(stale)} entries, {len(self._entries)} left")
        return len(stale)

    async def run_sweeper(self, interval_seconds: float = 60.0) -> None:
        """
        Sweep on a fixed interval until cancelled.

        Run as a background task owned by the application lifespan.
        """
        logger.info(f"Rate limiter sweeper started (interval={interval_seconds}s)")
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                self.sweep()
        except asyncio.CancelledError:
            logger.info("Rate limiter sweeper stopped")
            raise

    def reset(self) -> None:
        """Forget every entry."""
        with self._lock:
            self._entries.clear()

    def metrics(self) -> dict:
        """
        Get limiter metrics for observability.

        Returns:
            Dict with entries, allowed, rejected, evicted
        """
        return {
            "entries": len(self._entries),
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "allowed": self._allowed_count,
            "rejected": self._rejected_count,
            "evicted": self._evicted_count,
        }
