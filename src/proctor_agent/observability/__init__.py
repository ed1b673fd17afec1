"""
Observability Module
====================

Session roll-ups for interviewers.

This module provides:
    - ViolationSummary: Groups violations by category with severity

DESIGN RULES:
    - Listens only; never influences gating or analysis
"""

from proctor_agent.observability.summary import (
    ViolationGroup,
    ViolationSummary,
    describe,
    severity_for,
)


__all__ = [
    "ViolationGroup",
    "ViolationSummary",
    "describe",
    "severity_for",
]
