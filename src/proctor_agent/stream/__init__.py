"""
Stream Module
=============

Frame model, analysis throttling and development frame feeding.

This module provides the ingestion layer for ProctorAgent:
    - Frame: Typed frame data model (internal representation)
    - FrameThrottle: Single-slot, cadence-gated queue in front of analysis
    - FrameFeeder: WebSocket client that replays images into a session

Example:
    from proctor_agent.stream import Frame, FrameThrottle

    throttle = FrameThrottle(analyzer.analyze, interval_seconds=2.0)

    # Capture loop
    frame = Frame.from_data_url(message["data"])
    throttle.submit(frame)
"""

from proctor_agent.stream.frame import Frame
from proctor_agent.stream.throttle import AnalysisTimeoutError, FrameThrottle
from proctor_agent.stream.feeder import (
    FeederMetrics,
    FrameFeeder,
    frame_message,
    load_frames,
)


__all__ = [
    "AnalysisTimeoutError",
    "FeederMetrics",
    "Frame",
    "FrameFeeder",
    "FrameThrottle",
    "frame_message",
    "load_frames",
]
