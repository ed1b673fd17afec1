"""
Rate Limiter Tests
==================

Fixed-window counting, window reset and stale entry sweeping.
"""

import asyncio
import threading

import pytest

from proctor_agent.edge import RateLimiter


class TestWindow:
    """Tests for per-client counting within a window."""

    def test_boundary_at_limit(self, clock):
        """The 100th request passes, the 101st is rejected."""
        limiter = RateLimiter(max_requests=100, window_seconds=60, clock=clock)

        decisions = [limiter.hit("10.0.0.1") for _ in range(100)]
        rejected = limiter.hit("10.0.0.1")

        assert all(d.allowed for d in decisions)
        assert decisions[-1].remaining == 0
        assert rejected.allowed is False
        assert rejected.retry_after == 60
        assert limiter.get("10.0.0.1").count == 100

    def test_count_never_exceeds_limit(self, clock):
        limiter = RateLimiter(max_requests=3, window_seconds=60, clock=clock)

        for _ in range(10):
            limiter.hit("a")

        assert limiter.get("a").count == 3
        assert limiter.metrics()["rejected"] == 7

    def test_reset_after_window(self, clock):
        """A request strictly after reset_at opens a new window."""
        limiter = RateLimiter(max_requests=2, window_seconds=60, clock=clock)
        limiter.hit("a")
        limiter.hit("a")

        clock.advance(60)
        assert limiter.hit("a").allowed is False  # now == reset_at is still inside

        clock.advance(0.001)
        decision = limiter.hit("a")

        assert decision.allowed is True
        assert decision.remaining == 1
        assert limiter.get("a").count == 1
        assert limiter.get("a").reset_at == pytest.approx(clock.now + 60)

    def test_retry_after_counts_down(self, clock):
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
        limiter.hit("a")

        clock.advance(59.5)
        decision = limiter.hit("a")

        assert decision.retry_after == 1

    def test_clients_are_independent(self, clock):
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)

        assert limiter.hit("a").allowed
        assert not limiter.hit("a").allowed
        assert limiter.hit("b").allowed

    def test_headers(self, clock):
        limiter = RateLimiter(max_requests=5, window_seconds=60, clock=clock)

        headers = limiter.hit("a").headers()

        assert headers == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "4",
            "X-RateLimit-Reset": "1060",
        }

    def test_concurrent_hits_never_overshoot(self, clock):
        """Check-and-increment stays atomic when many threads hit one client."""
        limiter = RateLimiter(max_requests=100, window_seconds=60, clock=clock)
        barrier = threading.Barrier(16)
        allowed = []
        allowed_lock = threading.Lock()

        def worker():
            barrier.wait()
            count = sum(1 for _ in range(50) if limiter.hit("a").allowed)
            with allowed_lock:
                allowed.append(count)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(allowed) == 100
        assert limiter.get("a").count == 100
        assert limiter.metrics()["allowed"] == 100
        assert limiter.metrics()["rejected"] == 700

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            RateLimiter(max_requests=0)
        with pytest.raises(ValueError):
            RateLimiter(window_seconds=0)


class TestSweep:
    """Tests for stale entry eviction."""

    def test_sweep_evicts_expired_entries(self, clock):
        """Stale entries disappear without further requests from those clients."""
        limiter = RateLimiter(max_requests=10, window_seconds=60, clock=clock)
        limiter.hit("a")
        limiter.hit("b")
        clock.advance(30)
        limiter.hit("c")

        clock.advance(31)
        evicted = limiter.sweep()

        assert evicted == 2
        assert "a" not in limiter
        assert "b" not in limiter
        assert "c" in limiter
        assert len(limiter) == 1

    def test_sweep_keeps_live_entries(self, clock):
        limiter = RateLimiter(window_seconds=60, clock=clock)
        limiter.hit("a")

        assert limiter.sweep() == 0
        assert len(limiter) == 1

    def test_background_sweeper(self, clock):
        async def scenario():
            limiter = RateLimiter(window_seconds=60, clock=clock)
            limiter.hit("a")
            clock.advance(120)

            task = asyncio.create_task(limiter.run_sweeper(interval_seconds=0.01))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return len(limiter), limiter.metrics()["evicted"]

        entries, evicted = asyncio.run(scenario())

        assert entries == 0
        assert evicted == 1
