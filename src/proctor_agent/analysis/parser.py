"""
Violation Parser
================

Extract structured violations from the model's free-text reply.

The proctoring prompt instructs the model to write one marker line per
violation and nothing at all otherwise:

    PROCTORING_VIOLATION: Looking Away
    PROCTORING_VIOLATION: Multiple Faces Detected

The marker is a wire contract between this parser and the prompt in
proctor_agent.analysis.prompt. Changing it is a breaking change that
requires both sides to move together (bump MARKER_PROTOCOL_VERSION).

Rules:
    - Every occurrence is matched, in order of appearance
    - The description runs up to the next line break and is trimmed
    - Text without a marker yields [] (the normal, violation-free case)
    - Confidence cannot be derived from text; the caller supplies it
"""

import re
from functools import lru_cache
from typing import List, Pattern

from proctor_agent.models.violation import ViolationEvent


VIOLATION_MARKER = "PROCTORING_VIOLATION:"
MARKER_PROTOCOL_VERSION = 1
DEFAULT_CONFIDENCE = 0.9


@lru_cache(maxsize=8)
def _marker_pattern(marker: str) -> Pattern[str]:
    return re.compile(re.escape(marker) + r"[ \t]*([^\r\n]+)")


def extract_violations(
    text: str,
    confidence: float = DEFAULT_CONFIDENCE,
    marker: str = VIOLATION_MARKER,
) -> List[ViolationEvent]:
    """
    Parse every marker line in a block of model text.

    Args:
        text: Free-text model reply
        confidence: Confidence assigned to every event
        marker: Literal prefix that introduces a violation

    Returns:
        One ViolationEvent per non-empty marker line, in source order
    """
    if not text:
        return []

    events: List[ViolationEvent] = []
    for match in _marker_pattern(marker).finditer(text):
        violation_type = match.group(1).strip()
        if not violation_type:
            continue
        events.append(ViolationEvent(
            type=violation_type,
            confidence=confidence,
            details=text,
        ))

    return events
