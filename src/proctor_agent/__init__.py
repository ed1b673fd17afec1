"""
ProctorAgent
============

Automated video proctoring service for voice-interview sessions.

This package receives periodic webcam frames, forwards them to a
vision-capable language model, and turns the model's free-text replies
into structured violation events for the interviewer UI. Every API route
under /api/ is protected by a per-address rate limiter.

Components:
    - stream: Frame model, single-slot throttle, development frame feeder
    - analysis: Marker-line parser, model backends, LangGraph analysis cycle
    - session: Connection state machine and listener fan-out
    - edge: Fixed-window rate limiter and HTTP middleware
    - observability: Per-session violation summaries

Example:
    from proctor_agent.config import settings
    from proctor_agent.main import create_app
    
    app = create_app(settings)
"""

__version__ = "0.1.0"
__author__ = "ProctorAgent Project"

__all__ = [
    "__version__",
]
