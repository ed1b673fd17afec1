"""
Session Module
==============

Connection state machine and signal fan-out for proctoring sessions.

Components:
    - ProctorSession: DISCONNECTED/CONNECTING/CONNECTED state machine
    - SessionListener: Base class for signal subscribers
    - LoggingListener: Logs every signal
    - OutboundQueueListener: Turns signals into WebSocket messages
    - CollectingListener: Keeps violations and errors in memory
"""

from proctor_agent.session.listeners import (
    CollectingListener,
    LoggingListener,
    OutboundQueueListener,
    SessionListener,
    error_payload,
)
from proctor_agent.session.manager import ProctorSession

__all__ = [
    "CollectingListener",
    "LoggingListener",
    "OutboundQueueListener",
    "ProctorSession",
    "SessionListener",
    "error_payload",
]
