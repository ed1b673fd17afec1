"""
Analysis Module
===============

Frame analysis against the remote vision model.

Components:
    - extract_violations: Marker-line parser (pure function)
    - ModelBackend: Protocol for remote model backends
    - MockModelBackend: Deterministic backend for tests and offline runs
    - GeminiBackend: Gemini generateContent over HTTP
    - AnalysisGraph: LangGraph workflow for one analysis cycle
    - FrameAnalyzer: Runs the graph and emits events to a ViolationSink

Design Philosophy:
    Visual understanding is delegated entirely to the remote model.
    This module only orchestrates the call and parses its reply.
"""

from proctor_agent.analysis.backend import (
    MockModelBackend,
    ModelAPIError,
    ModelBackend,
    ModelConfigurationError,
    ModelError,
    ModelTransportError,
)
from proctor_agent.analysis.gemini import GeminiBackend
from proctor_agent.analysis.parser import (
    DEFAULT_CONFIDENCE,
    VIOLATION_MARKER,
    extract_violations,
)
from proctor_agent.analysis.prompt import build_system_prompt, detection_thresholds
from proctor_agent.analysis.graph import AnalysisGraph
from proctor_agent.analysis.analyzer import FrameAnalyzer, ViolationSink

__all__ = [
    "AnalysisGraph",
    "DEFAULT_CONFIDENCE",
    "FrameAnalyzer",
    "GeminiBackend",
    "MockModelBackend",
    "ModelAPIError",
    "ModelBackend",
    "ModelConfigurationError",
    "ModelError",
    "ModelTransportError",
    "VIOLATION_MARKER",
    "ViolationSink",
    "build_system_prompt",
    "detection_thresholds",
    "extract_violations",
]
