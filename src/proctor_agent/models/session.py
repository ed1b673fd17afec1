"""
Session Models
==============

State and configuration types for a proctoring session.

Core Concepts:
    - ConnectionState: DISCONNECTED -> CONNECTING -> CONNECTED
    - Strictness: Policy level that tunes the prompt and thresholds
    - SessionConfig: Runtime configuration relayed while connected

Transitions:
    DISCONNECTED -> CONNECTING: connect() called
    CONNECTING -> CONNECTED:    reachability check succeeded
    CONNECTING -> DISCONNECTED: reachability check failed, or disconnect()
    CONNECTED -> DISCONNECTED:  disconnect() or unrecoverable error
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ConnectionState(str, Enum):
    """Logical connection state of a session to the remote model."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


class Strictness(str, Enum):
    """
    Proctoring policy level.

    Higher strictness shortens the durations the model waits before
    reporting and lowers per-category confidence thresholds.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SessionConfig(BaseModel):
    """
    Configuration a client may send while connected.

    Every field is optional; only supplied fields are applied.

    Attributes:
        strictness: Rebuilds the prompt and per-category thresholds
        confidence_threshold: Global minimum confidence for emission. Sent
            without strictness, it replaces the per-category thresholds;
            sent with strictness, the stricter of the two applies.
        analysis_interval_seconds: Minimum time between analyses
        system_prompt: Replaces the generated proctoring prompt
    """

    strictness: Optional[Strictness] = Field(default=None)
    confidence_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    analysis_interval_seconds: Optional[float] = Field(default=None, ge=0.0)
    system_prompt: Optional[str] = Field(default=None, min_length=1)

    class Config:
        """Pydantic model configuration."""

        extra = "ignore"
        json_schema_extra = {
            "example": {
                "strictness": "high",
                "confidence_threshold": 0.75,
                "analysis_interval_seconds": 2.0,
            }
        }
