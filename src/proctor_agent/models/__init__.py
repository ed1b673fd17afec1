"""
Data Models
===========

Pydantic models for ProctorAgent.

Models:
    Violation:
        - ViolationEvent: Structured proctoring alert
        - ViolationCategory: Known violation categories

    Request:
        - AnalysisRequest: Body sent to the remote model
        - GenerationConfig, SafetySetting: Fixed generation settings
        - ImagePayload: Inbound body for /api routes

    Session:
        - ConnectionState: Session state machine states
        - Strictness: Proctoring policy level
        - SessionConfig: Runtime configuration payload
"""

from proctor_agent.models.violation import ViolationCategory, ViolationEvent
from proctor_agent.models.request import (
    AnalysisRequest,
    Content,
    GenerationConfig,
    ImagePayload,
    InlineData,
    Part,
    SafetySetting,
)
from proctor_agent.models.session import ConnectionState, SessionConfig, Strictness

__all__ = [
    # Violation
    "ViolationEvent",
    "ViolationCategory",
    # Request
    "AnalysisRequest",
    "Content",
    "GenerationConfig",
    "ImagePayload",
    "InlineData",
    "Part",
    "SafetySetting",
    # Session
    "ConnectionState",
    "SessionConfig",
    "Strictness",
]
