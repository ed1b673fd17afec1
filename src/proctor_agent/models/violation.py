"""
Violation Models
================

Structured proctoring alerts produced from the vision model's replies.

A ViolationEvent is created by the parser for every marker line found in
a model response. Events are immutable once created and are fanned out to
every listener registered on a session.

Output Contract:
    {
        "type": "Looking Away",
        "timestamp": "2026-10-16T09:30:12.481Z",
        "confidence": 0.9,
        "details": "PROCTORING_VIOLATION: Looking Away"
    }

Design Rules:
    - `type` is free-form text as written by the model (trimmed)
    - `timestamp` is the event creation time, never a time from the text
    - `confidence` is advisory: the model's free text carries no score
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ViolationCategory(str, Enum):
    """
    Known violation categories the proctoring prompt asks for.

    The model writes free text after the marker, so classification is a
    case-insensitive substring match on the event type.

    Attributes:
        LOOKING_AWAY: Candidate looked away from the screen
        MULTIPLE_FACES: More than one face in frame
        LOW_ENGAGEMENT: Candidate appears distracted or tired
        SUSPICIOUS_MOVEMENT: Suspicious movement (may carry a suffix)
        UNAUTHORIZED_DEVICE: Phone or other device visible
        OTHER: Anything the model reported outside the known set
    """

    LOOKING_AWAY = "looking_away"
    MULTIPLE_FACES = "multiple_faces"
    LOW_ENGAGEMENT = "low_engagement"
    SUSPICIOUS_MOVEMENT = "suspicious_movement"
    UNAUTHORIZED_DEVICE = "unauthorized_device"
    OTHER = "other"

    @classmethod
    def classify(cls, violation_type: str) -> "ViolationCategory":
        """Map a free-text violation type onto a known category."""
        lowered = violation_type.lower()
        for needle, category in _CATEGORY_NEEDLES:
            if needle in lowered:
                return category
        return cls.OTHER

    @property
    def display_name(self) -> str:
        """Human-readable name for interviewer-facing summaries."""
        return _DISPLAY_NAMES[self]


_CATEGORY_NEEDLES = (
    ("looking away", ViolationCategory.LOOKING_AWAY),
    ("multiple faces", ViolationCategory.MULTIPLE_FACES),
    ("multiple persons", ViolationCategory.MULTIPLE_FACES),
    ("low engagement", ViolationCategory.LOW_ENGAGEMENT),
    ("suspicious movement", ViolationCategory.SUSPICIOUS_MOVEMENT),
    ("unauthorized device", ViolationCategory.UNAUTHORIZED_DEVICE),
)

_DISPLAY_NAMES = {
    ViolationCategory.LOOKING_AWAY: "Looking Away",
    ViolationCategory.MULTIPLE_FACES: "Multiple Persons Detected",
    ViolationCategory.LOW_ENGAGEMENT: "Low Engagement",
    ViolationCategory.SUSPICIOUS_MOVEMENT: "Suspicious Activity",
    ViolationCategory.UNAUTHORIZED_DEVICE: "Unauthorized Device",
    ViolationCategory.OTHER: "Other",
}


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ViolationEvent(BaseModel):
    """
    A single structured proctoring alert.

    Attributes:
        type: Violation description taken from the marker line
        timestamp: ISO-8601 creation time
        confidence: Score in [0, 1] used for threshold gating
        details: Raw source text the event was parsed from
    """

    type: str = Field(
        ...,
        min_length=1,
        description="Violation description as written by the model",
    )

    timestamp: str = Field(
        default_factory=utc_timestamp,
        description="ISO-8601 time the event was created",
    )

    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Confidence score used for threshold gating",
    )

    details: Optional[str] = Field(
        default=None,
        description="Raw model text the event was extracted from",
    )

    class Config:
        """Pydantic model configuration."""

        frozen = True
        json_schema_extra = {
            "example": {
                "type": "Looking Away",
                "timestamp": "2026-10-16T09:30:12.481Z",
                "confidence": 0.9,
                "details": "PROCTORING_VIOLATION: Looking Away",
            }
        }

    @property
    def category(self) -> ViolationCategory:
        """Known category this event falls into."""
        return ViolationCategory.classify(self.type)
