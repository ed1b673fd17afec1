"""
Session Listeners
=================

Subscribers for the signals a ProctorSession emits.

Signals:
    open       - session connected
    close      - session disconnected
    violation  - a ViolationEvent passed gating
    error      - connect or analysis failure
    config     - configuration applied (exact payload)
    warning    - misuse that was refused (e.g. config while disconnected)

Listeners override only the signals they care about; the base class
implements every signal as a no-op.
"""

import asyncio
import logging
from typing import Any, Dict, List

from proctor_agent.models.violation import ViolationEvent


logger = logging.getLogger(__name__)


class SessionListener:
    """Base listener: every signal is a no-op."""

    def on_open(self) -> None:
        pass

    def on_close(self) -> None:
        pass

    def on_violation(self, event: ViolationEvent) -> None:
        pass

    def on_error(self, error: Exception) -> None:
        pass

    def on_config(self, config: Dict[str, Any]) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass


def error_payload(error: Exception) -> Dict[str, Any]:
    """JSON-friendly description of an error."""
    payload: Dict[str, Any] = {
        "kind": type(error).__name__,
        "message": str(error),
    }
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        payload["status"] = status_code
    return payload


class LoggingListener(SessionListener):
    """Writes every signal to the log, tagged with the session id."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id

    def on_open(self) -> None:
        logger.info(f"[{self.session_id}] session open")

    def on_close(self) -> None:
        logger.info(f"[{self.session_id}] session closed")

    def on_violation(self, event: ViolationEvent) -> None:
        logger.warning(
            f"[{self.session_id}] VIOLATION: {event.type} "
            f"(confidence={event.confidence:.2f})"
        )

    def on_error(self, error: Exception) -> None:
        logger.error(f"[{self.session_id}] error: {error}")

    def on_warning(self, message: str) -> None:
        logger.warning(f"[{self.session_id}] {message}")


class OutboundQueueListener(SessionListener):
    """
    Converts signals into JSON messages on an asyncio queue.

    Used by the WebSocket endpoint: a sender task drains the queue into
    the socket so that signal delivery never suspends the session.

    Message shapes:
        {"type": "open"} / {"type": "close"}
        {"type": "violation", "data": <ViolationEvent>}
        {"type": "error", "data": {"kind", "message", "status"?}}
        {"type": "config", "data": <payload>}
        {"type": "warning", "data": {"message"}}
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()

    def push(self, message: Dict[str, Any]) -> None:
        self.queue.put_nowait(message)

    def on_open(self) -> None:
        self.push({"type": "open"})

    def on_close(self) -> None:
        self.push({"type": "close"})

    def on_violation(self, event: ViolationEvent) -> None:
        self.push({"type": "violation", "data": event.model_dump(mode="json")})

    def on_error(self, error: Exception) -> None:
        self.push({"type": "error", "data": error_payload(error)})

    def on_config(self, config: Dict[str, Any]) -> None:
        self.push({"type": "config", "data": config})

    def on_warning(self, message: str) -> None:
        self.push({"type": "warning", "data": {"message": message}})


class CollectingListener(SessionListener):
    """Keeps every violation and error in memory."""

    def __init__(self) -> None:
        self.violations: List[ViolationEvent] = []
        self.errors: List[Exception] = []
        self.configs: List[Dict[str, Any]] = []
        self.warnings: List[str] = []
        self.signals: List[str] = []

    def on_open(self) -> None:
        self.signals.append("open")

    def on_close(self) -> None:
        self.signals.append("close")

    def on_violation(self, event: ViolationEvent) -> None:
        self.signals.append("violation")
        self.violations.append(event)

    def on_error(self, error: Exception) -> None:
        self.signals.append("error")
        self.errors.append(error)

    def on_config(self, config: Dict[str, Any]) -> None:
        self.signals.append("config")
        self.configs.append(config)

    def on_warning(self, message: str) -> None:
        self.signals.append("warning")
        self.warnings.append(message)
