"""
Proctoring Session
==================

Connection state machine that ties the throttle, analyzer and listeners
together for one interview.

State Machine:
    DISCONNECTED ──connect()──▶ CONNECTING ──health ok──▶ CONNECTED
         ▲                          │                         │
         └──────health failed───────┘                         │
         └──────────disconnect() / unrecoverable error────────┘

Frame routing:
    CONNECTED:    forwarded to the throttle (may dispatch an analysis)
    CONNECTING:   held in the throttle's single slot, no dispatch
    DISCONNECTED: dropped

Design Rules:
    - connect() never retries; the error is emitted AND re-raised
    - disconnect() is immediate and idempotent
    - send_config() while not connected is refused with a warning
    - A failing listener never prevents delivery to the others
"""

import asyncio
import logging
import time
import uuid
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Union

from proctor_agent.analysis.analyzer import FrameAnalyzer
from proctor_agent.analysis.backend import (
    ModelBackend,
    ModelConfigurationError,
    ModelTransportError,
)
from proctor_agent.analysis.parser import DEFAULT_CONFIDENCE
from proctor_agent.analysis.prompt import build_system_prompt, detection_thresholds
from proctor_agent.models.request import GenerationConfig, SafetySetting
from proctor_agent.models.session import ConnectionState, SessionConfig, Strictness
from proctor_agent.models.violation import ViolationEvent
from proctor_agent.session.listeners import SessionListener
from proctor_agent.stream.frame import Frame
from proctor_agent.stream.throttle import FrameThrottle

if TYPE_CHECKING:
    from proctor_agent.config import Settings


logger = logging.getLogger(__name__)


class ProctorSession:
    """
    One proctoring session against the remote model.

    Acts as the analyzer's ViolationSink and relays everything it
    receives to the registered listeners.

    Attributes:
        session_id: Identifier used in logs
        state: Current ConnectionState
        analyzer: FrameAnalyzer used for every cycle
        throttle: Single-slot queue in front of the analyzer

    Example:
        session = ProctorSession(backend)
        session.subscribe(LoggingListener(session.session_id))

        await session.connect()
        session.submit_frame(frame)
        session.disconnect()
    """

    def __init__(
        self,
        backend: ModelBackend,
        confidence_threshold: float = 0.7,
        default_confidence: float = DEFAULT_CONFIDENCE,
        strictness: Strictness = Strictness.MEDIUM,
        analysis_interval_seconds: float = 2.0,
        analysis_timeout_seconds: Optional[float] = 30.0,
        connect_timeout_seconds: float = 10.0,
        generation: Optional[GenerationConfig] = None,
        safety: Optional[List[SafetySetting]] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize proctoring session.

        Args:
            backend: Remote model backend (shared between sessions)
            confidence_threshold: Global minimum confidence
            default_confidence: Confidence assigned to parsed events
            strictness: Initial policy level (prompt and category thresholds)
            analysis_interval_seconds: Minimum time between analyses
            analysis_timeout_seconds: Time budget per analysis
            connect_timeout_seconds: Time budget for the reachability check
            generation: Fixed sampling parameters
            safety: Fixed safety settings
            session_id: Identifier (random if None)
            clock: Monotonic time source for the throttle
        """
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.connect_timeout_seconds = connect_timeout_seconds
        self.strictness = Strictness(strictness)

        self._backend = backend
        self._state = ConnectionState.DISCONNECTED
        self._listeners: List[SessionListener] = []
        self._dropped_frames: int = 0

        self.analyzer = FrameAnalyzer(
            backend,
            sink=self,
            confidence_threshold=confidence_threshold,
            default_confidence=default_confidence,
            category_thresholds=detection_thresholds(self.strictness),
            system_prompt=build_system_prompt(self.strictness),
            generation=generation,
            safety=safety,
        )
        self.throttle = FrameThrottle(
            self.analyzer.analyze,
            interval_seconds=analysis_interval_seconds,
            timeout_seconds=analysis_timeout_seconds,
            on_error=self.on_error,
            clock=clock,
        )

    @classmethod
    def from_settings(
        cls,
        backend: ModelBackend,
        settings: "Settings",
        **overrides: Any,
    ) -> "ProctorSession":
        """Create a session configured from application settings."""
        analysis = settings.analysis
        options: Dict[str, Any] = {
            "confidence_threshold": analysis.confidence_threshold,
            "default_confidence": analysis.default_confidence,
            "strictness": analysis.strictness,
            "analysis_interval_seconds": analysis.interval_seconds,
            "analysis_timeout_seconds": analysis.timeout_seconds,
            "connect_timeout_seconds": analysis.connect_timeout_seconds,
            "generation": settings.model.generation,
            "safety": [settings.model.safety],
        }
        options.update(overrides)
        return cls(backend, **options)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def connected(self) -> bool:
        """Whether the session is CONNECTED."""
        return self._state is ConnectionState.CONNECTED

    def subscribe(self, listener: SessionListener) -> None:
        """Register a listener for all session signals."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SessionListener) -> None:
        """Remove a previously registered listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def connect(self) -> None:
        """
        Check that the remote model is reachable and become CONNECTED.

        No-op when already connected or connecting.

        Raises:
            ModelError: If the reachability check fails or times out.
                The session is DISCONNECTED and an error signal was emitted.
        """
        if self._state is not ConnectionState.DISCONNECTED:
            logger.debug(f"[{self.session_id}] connect() ignored in state {self._state.value}")
            return

        self._state = ConnectionState.CONNECTING
        self.throttle.reopen()
        logger.info(f"[{self.session_id}] connecting")

        try:
            await asyncio.wait_for(
                self._backend.check_health(),
                timeout=self.connect_timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = ModelTransportError(
                f"Reachability check timed out after {self.connect_timeout_seconds}s"
            )
            self._fail_connect(error)
            raise error
        except Exception as e:
            self._fail_connect(e)
            raise

        if self._state is not ConnectionState.CONNECTING:
            # disconnect() won the race while the check was running
            return

        self._state = ConnectionState.CONNECTED
        logger.info(f"[{self.session_id}] connected")
        self._emit("on_open")

        # A frame held while CONNECTING is analyzed now
        if self.throttle.poke():
            logger.debug(f"[{self.session_id}] dispatched frame held during connect")

    def _fail_connect(self, error: Exception) -> None:
        was_connecting = self._state is ConnectionState.CONNECTING
        self._state = ConnectionState.DISCONNECTED
        self.throttle.close()
        logger.error(f"[{self.session_id}] connect failed: {error}")
        if was_connecting:
            self._emit("on_error", error)

    def disconnect(self) -> None:
        """
        Become DISCONNECTED immediately.

        Cancels any in-flight analysis and drops the waiting frame.
        Calling it while already disconnected does nothing.
        """
        if self._state is ConnectionState.DISCONNECTED:
            return

        self._state = ConnectionState.DISCONNECTED
        self.throttle.close()
        logger.info(f"[{self.session_id}] disconnected")
        self._emit("on_close")

    # -------------------------------------------------------------------------
    # Frames and configuration
    # -------------------------------------------------------------------------

    def submit_frame(self, frame: Frame) -> bool:
        """
        Route a captured frame according to the connection state.

        Must be called from a running event loop.

        Returns:
            True if an analysis was dispatched for this frame.
        """
        if self._state is ConnectionState.CONNECTED:
            return self.throttle.submit(frame)

        if self._state is ConnectionState.CONNECTING:
            self.throttle.hold(frame)
            return False

        self._dropped_frames += 1
        logger.debug(f"[{self.session_id}] frame dropped while disconnected")
        return False

    def send_config(self, payload: Union[SessionConfig, Mapping[str, Any]]) -> bool:
        """
        Apply runtime configuration while connected.

        Args:
            payload: SessionConfig or a mapping validated as one

        Returns:
            True if applied, False if refused because not connected.

        Raises:
            pydantic.ValidationError: If the payload is invalid
        """
        if self._state is not ConnectionState.CONNECTED:
            message = f"Cannot send config: session is {self._state.value}"
            logger.warning(f"[{self.session_id}] {message}")
            self._emit("on_warning", message)
            return False

        if isinstance(payload, SessionConfig):
            config = payload
            raw = payload.model_dump(mode="json", exclude_none=True)
        else:
            config = SessionConfig.model_validate(payload)
            raw = dict(payload)

        self._apply_config(config)
        self._emit("on_config", raw)
        return True

    def _apply_config(self, config: SessionConfig) -> None:
        category_thresholds = None
        system_prompt = config.system_prompt

        if config.strictness is not None:
            self.strictness = config.strictness
            category_thresholds = detection_thresholds(config.strictness)
            if system_prompt is None:
                system_prompt = build_system_prompt(config.strictness)
        elif config.confidence_threshold is not None:
            # A threshold sent on its own gates every category
            category_thresholds = {}

        self.analyzer.configure(
            confidence_threshold=config.confidence_threshold,
            category_thresholds=category_thresholds,
            system_prompt=system_prompt,
        )

        if config.analysis_interval_seconds is not None:
            self.throttle.interval_seconds = config.analysis_interval_seconds

    # -------------------------------------------------------------------------
    # ViolationSink
    # -------------------------------------------------------------------------

    def on_violation(self, event: ViolationEvent) -> None:
        """Relay an accepted violation to every listener."""
        self._emit("on_violation", event)

    def on_error(self, error: Exception) -> None:
        """Relay an analysis failure; configuration errors end the session."""
        self._emit("on_error", error)
        if isinstance(error, ModelConfigurationError):
            logger.error(f"[{self.session_id}] unrecoverable error, disconnecting")
            self.disconnect()

    def _emit(self, signal: str, *args: Any) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, signal)(*args)
            except Exception as e:
                logger.error(
                    f"[{self.session_id}] listener {type(listener).__name__}.{signal} failed: {e}"
                )

    def metrics(self) -> dict:
        """Get session metrics for observability."""
        return {
            "session_id": self.session_id,
            "state": self._state.value,
            "strictness": self.strictness.value,
            "dropped_frames": self._dropped_frames,
            "listeners": len(self._listeners),
            "throttle": self.throttle.metrics(),
            "analyzer": self.analyzer.get_metrics(),
        }
