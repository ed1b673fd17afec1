"""
Violation Summary
=================

Interviewer-facing roll-up of the violations seen in one session.

This module is observability ONLY: it listens to a session and never
influences analysis or gating.

Grouping:
    Known categories are grouped by ViolationCategory. Types outside the
    known set are grouped by their own text.

Severity (per group):
    >= 5 occurrences -> high
    >= 3 occurrences -> medium
    otherwise        -> low
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from proctor_agent.models.violation import ViolationCategory, ViolationEvent
from proctor_agent.session.listeners import SessionListener


logger = logging.getLogger(__name__)


HIGH_SEVERITY_COUNT = 5
MEDIUM_SEVERITY_COUNT = 3

_DESCRIPTIONS = {
    ViolationCategory.LOOKING_AWAY: "Candidate repeatedly looked away from screen",
    ViolationCategory.MULTIPLE_FACES: "Multiple people detected in the frame",
    ViolationCategory.LOW_ENGAGEMENT: "Candidate showed signs of disengagement",
    ViolationCategory.SUSPICIOUS_MOVEMENT: "Suspicious movements detected",
    ViolationCategory.UNAUTHORIZED_DEVICE: "Device (possibly phone or tablet) detected in frame",
    ViolationCategory.OTHER: "Potential integrity violation detected",
}


def severity_for(count: int) -> str:
    """Severity label for a number of occurrences."""
    if count >= HIGH_SEVERITY_COUNT:
        return "high"
    if count >= MEDIUM_SEVERITY_COUNT:
        return "medium"
    return "low"


def describe(event: ViolationEvent) -> str:
    """Short explanation of a violation for the interviewer."""
    category = event.category
    if category is ViolationCategory.SUSPICIOUS_MOVEMENT and "-" in event.type:
        suffix = event.type.split("-", 1)[1].strip()
        if suffix:
            return f"Suspicious activity: {suffix}"
    return _DESCRIPTIONS[category]


@dataclass
class ViolationGroup:
    """
    Occurrences of one kind of violation.

    Attributes:
        key: Category value, or the raw type for unknown violations
        name: Display name
        description: Explanation taken from the first occurrence
        count: Number of occurrences
        first_seen: Timestamp of the first occurrence
        last_seen: Timestamp of the latest occurrence
    """

    key: str
    name: str
    description: str
    first_seen: str
    last_seen: str
    count: int = 0
    types: List[str] = field(default_factory=list)

    @property
    def severity(self) -> str:
        return severity_for(self.count)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "count": self.count,
            "severity": self.severity,
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
            "types": list(self.types),
        }


class ViolationSummary(SessionListener):
    """
    Listener that groups a session's violations.

    Example:
        summary = ViolationSummary()
        session.subscribe(summary)
        ...
        report = summary.to_dict()
    """

    def __init__(self) -> None:
        self._groups: Dict[str, ViolationGroup] = {}
        self._total: int = 0

    @property
    def total(self) -> int:
        """Number of violations recorded."""
        return self._total

    def on_violation(self, event: ViolationEvent) -> None:
        self.record(event)

    def record(self, event: ViolationEvent) -> ViolationGroup:
        """Add one violation to its group."""
        category = event.category
        if category is ViolationCategory.OTHER:
            key, name = event.type, event.type
        else:
            key, name = category.value, category.display_name

        group = self._groups.get(key)
        if group is None:
            group = ViolationGroup(
                key=key,
                name=name,
                description=describe(event),
                first_seen=event.timestamp,
                last_seen=event.timestamp,
            )
            self._groups[key] = group

        group.count += 1
        group.last_seen = event.timestamp
        if event.type not in group.types:
            group.types.append(event.type)

        self._total += 1
        return group

    def get(self, key: str) -> Optional[ViolationGroup]:
        """Group for a category value or raw type."""
        return self._groups.get(key)

    def snapshot(self) -> List[ViolationGroup]:
        """Groups ordered by count (descending), then first occurrence."""
        return sorted(
            self._groups.values(),
            key=lambda group: (-group.count, group.first_seen),
        )

    def clear(self) -> None:
        self._groups.clear()
        self._total = 0

    def to_dict(self) -> dict:
        return {
            "total": self._total,
            "groups": [group.to_dict() for group in self.snapshot()],
        }
