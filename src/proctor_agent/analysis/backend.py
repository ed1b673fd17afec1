"""
Model Backend
=============

Abstraction over the remote vision model.

This module provides the ModelBackend protocol, the error taxonomy shared
by all backends, and MockModelBackend, a deterministic backend for tests
and for running the service without an API credential.

Design Rules:
    - A backend performs I/O only; it never parses violations
    - Failures are raised as ModelError subclasses, never returned
    - generate_content and check_health are the pipeline's only
      suspension points
"""

import logging
from collections import deque
from typing import Any, Deque, Dict, Optional, Protocol

from proctor_agent.models.request import AnalysisRequest


logger = logging.getLogger(__name__)


class ModelError(Exception):
    """Base class for remote model failures."""
    pass


class ModelConfigurationError(ModelError):
    """Raised when the backend is misconfigured (e.g. missing API key)."""
    pass


class ModelTransportError(ModelError):
    """Raised when the remote model cannot be reached."""
    pass


class ModelAPIError(ModelError):
    """
    Raised when the remote model answers with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the remote service
        message: Error message forwarded from the remote body
        details: Extra context (status, reason phrase)
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(f"Model API returned {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.details = details or {"status": status_code}


class ModelBackend(Protocol):
    """
    Protocol for remote model backends.

    Implemented by:
        - GeminiBackend (production, HTTP)
        - MockModelBackend (tests, offline runs)
    """

    async def generate_content(self, request: AnalysisRequest) -> Dict[str, Any]:
        """
        Run one analysis request.

        Args:
            request: Prompt, image and generation settings

        Returns:
            Raw JSON response of the model

        Raises:
            ModelError: On any failure
        """
        ...

    async def check_health(self) -> None:
        """
        Lightweight reachability check.

        Raises:
            ModelError: If the model is unreachable or misconfigured
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


def text_response(text: str) -> Dict[str, Any]:
    """Wrap text in the generateContent response shape."""
    return {
        "candidates": [
            {"content": {"parts": [{"text": text}], "role": "model"}}
        ]
    }


class MockModelBackend:
    """
    Deterministic backend that replies with canned text.

    Records the most recent requests it receives so tests can assert on
    the number of model calls and their payloads.

    Attributes:
        response_text: Text returned in every response
        healthy: Whether check_health succeeds
        requests: Most recent requests received (oldest first)
    """

    def __init__(
        self,
        response_text: str = "",
        healthy: bool = True,
        error: Optional[ModelError] = None,
        max_recorded: int = 100,
    ) -> None:
        """
        Initialize mock backend.

        Args:
            response_text: Model reply for every request
            healthy: Whether the reachability check passes
            error: If set, generate_content raises it
            max_recorded: Number of requests kept in `requests`
        """
        self.response_text = response_text
        self.healthy = healthy
        self.error = error
        self.requests: Deque[AnalysisRequest] = deque(maxlen=max_recorded)
        self.health_checks: int = 0
        self._call_count: int = 0

        logger.info("MockModelBackend initialized")

    async def generate_content(self, request: AnalysisRequest) -> Dict[str, Any]:
        self._call_count += 1
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return text_response(self.response_text)

    async def check_health(self) -> None:
        self.health_checks += 1
        if not self.healthy:
            raise ModelTransportError("Mock backend marked unhealthy")

    async def aclose(self) -> None:
        pass

    @property
    def call_count(self) -> int:
        """Number of generate_content calls."""
        return self._call_count
