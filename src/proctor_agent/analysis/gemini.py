"""
Gemini Backend
==============

Production model backend calling the Gemini generateContent REST API.

This backend:
    - Sends one POST per analysis with the API credential in a header
    - Performs a cheap GET against the models listing for health checks
    - Bounds every call with a configurable timeout
    - Translates failures into the ModelError taxonomy

Design Rules:
    - Fail fast on misconfiguration (missing key)
    - Never retry: retry policy belongs to the caller
    - Forward remote error messages verbatim where possible
"""

import logging
from typing import Any, Dict, Optional

import httpx

from proctor_agent.analysis.backend import (
    ModelAPIError,
    ModelConfigurationError,
    ModelTransportError,
)
from proctor_agent.models.request import AnalysisRequest


logger = logging.getLogger(__name__)


DEFAULT_API_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-pro-vision:generateContent"
)
DEFAULT_HEALTH_URL = "https://generativelanguage.googleapis.com/v1/models"


class GeminiBackend:
    """
    HTTP client for the Gemini generateContent endpoint.

    Attributes:
        api_url: generateContent endpoint
        health_url: Endpoint used for reachability checks
        auth_scheme: "bearer" (Authorization header) or "api_key" (x-goog-api-key)
        timeout_seconds: Per-request timeout
    """

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str = DEFAULT_API_URL,
        health_url: str = DEFAULT_HEALTH_URL,
        auth_scheme: str = "bearer",
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize Gemini backend.

        The API key is validated lazily so the service can start without
        one; the first call then fails with ModelConfigurationError.

        Args:
            api_key: Gemini API credential
            api_url: generateContent endpoint URL
            health_url: URL for the reachability check
            auth_scheme: How the credential is sent
            timeout_seconds: Timeout for every request
            client: Pre-built httpx client (tests inject a mock transport)
        """
        if auth_scheme not in ("bearer", "api_key"):
            raise ValueError(f"Unknown auth scheme: {auth_scheme}")

        self._api_key = api_key
        self.api_url = api_url
        self.health_url = health_url
        self.auth_scheme = auth_scheme
        self.timeout_seconds = timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

        self._api_call_count: int = 0
        self._api_error_count: int = 0

        logger.info(
            f"GeminiBackend initialized: url={api_url}, "
            f"auth={auth_scheme}, timeout={timeout_seconds}s, "
            f"key_configured={bool(self._configured_key())}"
        )

    def _configured_key(self) -> str:
        return (self._api_key or "").strip()

    def _auth_headers(self) -> Dict[str, str]:
        """Build credential headers, failing fast when no key is set."""
        api_key = self._configured_key()
        if not api_key:
            raise ModelConfigurationError("GEMINI_API_KEY is not configured")

        if self.auth_scheme == "api_key":
            return {"x-goog-api-key": api_key}
        return {"Authorization": f"Bearer {api_key}"}

    async def generate_content(self, request: AnalysisRequest) -> Dict[str, Any]:
        """
        Send one analysis request.

        Args:
            request: Prompt, image and generation settings

        Returns:
            Parsed JSON body of the model response

        Raises:
            ModelConfigurationError: No API key configured
            ModelTransportError: Network failure or timeout
            ModelAPIError: Non-2xx response
        """
        headers = {"Content-Type": "application/json", **self._auth_headers()}
        self._api_call_count += 1

        try:
            response = await self._client.post(
                self.api_url,
                json=request.to_payload(),
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as e:
            self._api_error_count += 1
            raise ModelTransportError(f"Gemini request failed: {e}") from e

        if response.is_error:
            self._api_error_count += 1
            raise _api_error(response)

        try:
            return response.json()
        except ValueError as e:
            self._api_error_count += 1
            raise ModelAPIError(
                response.status_code,
                f"Invalid JSON in model response: {e}",
            ) from e

    async def check_health(self) -> None:
        """
        Verify the model API is reachable with the configured key.

        Raises:
            ModelConfigurationError: No API key configured
            ModelTransportError: Network failure or timeout
            ModelAPIError: Non-2xx response
        """
        headers = self._auth_headers()

        try:
            response = await self._client.get(
                self.health_url,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise ModelTransportError(f"Gemini health check failed: {e}") from e

        if response.is_error:
            raise _api_error(response)

        logger.debug("Gemini health check passed")

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def get_metrics(self) -> dict:
        """Get backend metrics for observability."""
        return {
            "api_call_count": self._api_call_count,
            "api_error_count": self._api_error_count,
        }


def _api_error(response: httpx.Response) -> ModelAPIError:
    """Extract the most useful message from an error response."""
    text = response.text
    message = text
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message") or text
        elif error:
            message = str(error)
        elif body.get("message"):
            message = str(body["message"])

    logger.warning(f"Gemini returned {response.status_code}: {message[:200]}")
    return ModelAPIError(
        response.status_code,
        message,
        details={
            "status": response.status_code,
            "statusText": response.reason_phrase,
        },
    )
