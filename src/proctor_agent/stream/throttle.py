"""
Frame Throttle
==============

Single-slot, last-write-wins frame queue with an analysis cadence gate.

This module decouples the capture cadence (e.g. one frame per second from
the browser) from the analysis cadence (e.g. one model call every two
seconds) and guarantees that at most one analysis is in flight.

Design Rules:
    - submit() never blocks and never fails
    - The slot holds ONE frame; a newer frame replaces an unsent one
    - A dispatch needs: no analysis in flight AND interval elapsed
    - After an analysis completes, the slot is drained if the gate allows
    - No timer-driven flush: throughput is driven by submissions only
    - Every analysis is bounded by a timeout that frees the slot
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from proctor_agent.stream.frame import Frame


logger = logging.getLogger(__name__)


class AnalysisTimeoutError(Exception):
    """Raised when an analysis cycle exceeds its time budget."""
    pass


class FrameThrottle:
    """
    Cadence-gated single-slot frame queue.

    The slot is shared between the producer (submit) and the consumer
    (analysis cycle). All access happens on the event loop thread and no
    method suspends between reading and writing the slot, so access is
    serialized without a lock.

    Attributes:
        interval_seconds: Minimum time between analysis dispatches
        timeout_seconds: Upper bound for a single analysis
        busy: Whether an analysis is currently in flight
        pending: Frame waiting in the slot, if any

    Example:
        throttle = FrameThrottle(analyzer.analyze, interval_seconds=2.0)

        # Producer (capture loop)
        throttle.submit(frame)

        # Shutdown
        throttle.close()
    """

    def __init__(
        self,
        analyze: Callable[[Frame], Awaitable[object]],
        interval_seconds: float = 2.0,
        timeout_seconds: Optional[float] = 30.0,
        on_error: Optional[Callable[[Exception], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize frame throttle.

        Args:
            analyze: Coroutine function run for each dispatched frame
            interval_seconds: Minimum seconds between dispatches. Must be >= 0.
            timeout_seconds: Per-analysis time budget (None = unbounded)
            on_error: Called with failures the analyze callable did not handle
            clock: Monotonic time source
        """
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")

        self._analyze = analyze
        self._interval = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._on_error = on_error
        self._clock = clock

        self._pending: Optional[Frame] = None
        self._task: Optional[asyncio.Task] = None
        self._last_analysis_time: Optional[float] = None
        self._closed: bool = False

        # Metrics
        self._submitted: int = 0
        self._superseded: int = 0
        self._dispatched: int = 0
        self._completed: int = 0
        self._failed: int = 0
        self._timeouts: int = 0

    @property
    def interval_seconds(self) -> float:
        """Minimum seconds between dispatches."""
        return self._interval

    @interval_seconds.setter
    def interval_seconds(self, value: float) -> None:
        if value < 0:
            raise ValueError("interval_seconds must be >= 0")
        self._interval = value

    @property
    def busy(self) -> bool:
        """Whether an analysis is currently in flight."""
        return self._task is not None

    @property
    def pending(self) -> Optional[Frame]:
        """Frame waiting in the slot, if any."""
        return self._pending

    @property
    def last_analysis_time(self) -> Optional[float]:
        """Clock value of the last dispatch (None before the first)."""
        return self._last_analysis_time

    def submit(self, frame: Frame) -> bool:
        """
        Store a frame and dispatch it if the cadence gate allows.

        Must be called from a running event loop.

        Args:
            frame: Newly captured frame

        Returns:
            True if an analysis was dispatched for this frame,
            False if it is waiting in the slot (or the throttle is closed).
        """
        self.hold(frame)
        return self._maybe_dispatch()

    def hold(self, frame: Frame) -> None:
        """
        Store a frame in the slot without attempting a dispatch.

        Replaces (and discards) any frame already waiting.
        """
        if self._closed:
            return

        self._submitted += 1
        if self._pending is not None:
            self._superseded += 1
            logger.debug(f"Superseded pending frame. Total superseded: {self._superseded}")
        self._pending = frame

    def poke(self) -> bool:
        """
        Dispatch the waiting frame if the cadence gate allows.

        Used when a held frame becomes eligible without a new submission
        (e.g. the owning session just connected).

        Returns:
            True if an analysis was dispatched.
        """
        return self._maybe_dispatch()

    def clear(self) -> bool:
        """
        Drop the waiting frame, if any.

        Returns:
            True if a frame was dropped.
        """
        dropped = self._pending is not None
        self._pending = None
        return dropped

    def close(self) -> None:
        """Cancel any in-flight analysis and drop the waiting frame."""
        self._closed = True
        self.clear()
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def reopen(self) -> None:
        """Accept frames again after close()."""
        self._closed = False

    async def wait_idle(self) -> None:
        """Wait until no analysis is in flight (including drains)."""
        while self._task is not None:
            await asyncio.wait({self._task})

    def _maybe_dispatch(self) -> bool:
        """Start an analysis for the waiting frame if allowed."""
        if self._closed or self._task is not None or self._pending is None:
            return False

        now = self._clock()
        if (
            self._last_analysis_time is not None
            and now - self._last_analysis_time < self._interval
        ):
            return False

        frame, self._pending = self._pending, None
        self._last_analysis_time = now
        self._dispatched += 1
        self._task = asyncio.get_running_loop().create_task(
            self._run(frame),
            name="frame_analysis",
        )
        return True

    async def _run(self, frame: Frame) -> None:
        """Run one analysis cycle, then drain the slot if eligible."""
        try:
            if self.timeout_seconds is None:
                await self._analyze(frame)
            else:
                await asyncio.wait_for(self._analyze(frame), timeout=self.timeout_seconds)
            self._completed += 1
        except asyncio.TimeoutError:
            self._timeouts += 1
            logger.error(
                f"Analysis timed out after {self.timeout_seconds}s ({frame!r}). "
                f"Total timeouts: {self._timeouts}"
            )
            self._report(AnalysisTimeoutError(
                f"Analysis exceeded {self.timeout_seconds}s time budget"
            ))
        except Exception as e:
            self._failed += 1
            logger.error(f"Analysis failed ({frame!r}): {e}")
            self._report(e)
        finally:
            if self._task is asyncio.current_task():
                self._task = None

        self._maybe_dispatch()

    def _report(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)

    def metrics(self) -> dict:
        """
        Get throttle metrics for observability.

        Returns:
            Dict with busy, pending, submitted, superseded, dispatched,
            completed, failed, timeouts
        """
        return {
            "busy": self.busy,
            "pending": self._pending is not None,
            "submitted": self._submitted,
            "superseded": self._superseded,
            "dispatched": self._dispatched,
            "completed": self._completed,
            "failed": self._failed,
            "timeouts": self._timeouts,
        }
