"""
API Tests
=========

HTTP routes, edge middleware and the proctoring WebSocket.
"""

import asyncio
import base64

import httpx
import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from proctor_agent.analysis import GeminiBackend, MockModelBackend
from proctor_agent.analysis.backend import text_response
from proctor_agent.edge import RateLimiter
from proctor_agent.main import _pump_outbound, create_app

from conftest import JPEG_BYTES, VIOLATION_TEXT


CONTENTS = [{"parts": [{"text": "Describe the frame"}]}]


def gemini_backend(handler, api_key="test-key"):
    """GeminiBackend wired to an in-process transport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiBackend(api_key=api_key, client=client)


@pytest.fixture
def backend():
    return MockModelBackend(response_text=VIOLATION_TEXT)


@pytest.fixture
def client(test_settings, backend):
    app = create_app(settings=test_settings, backend=backend)
    with TestClient(app) as client:
        yield client


class TestServiceRoutes:
    """Tests for info, liveness and metrics."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "ProctorAgent"
        assert response.json()["model_backend"] == "mock"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics(self, client):
        data = client.get("/metrics").json()

        assert data["active_sessions"] == 0
        assert "entries" in data["rate_limit"]


class TestGeminiProxy:
    """Tests for POST /api/gemini."""

    def test_forwards_and_returns_model_json(self, client, backend):
        response = client.post("/api/gemini", json={"contents": CONTENTS})

        assert response.status_code == 200
        assert response.json() == text_response(VIOLATION_TEXT)
        assert response.headers["cache-control"] == "no-store"
        assert response.headers["x-response-time"].endswith("ms")
        assert response.headers["server-timing"].startswith("total;dur=")
        assert backend.requests[0].contents[0].parts[0].text == "Describe the frame"

    def test_caller_generation_parameters_are_overridden(self, client, backend):
        client.post("/api/gemini", json={
            "contents": CONTENTS,
            "generationConfig": {"temperature": 0.9, "maxOutputTokens": 4096},
            "safetySettings": [{"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"}],
        })

        request = backend.requests[0]
        assert request.generation_config.temperature == 0.1
        assert request.generation_config.max_output_tokens == 256
        assert request.safety_settings[0].threshold == "BLOCK_LOW_AND_ABOVE"

    def test_image_form_adds_prompt(self, client, backend):
        image = base64.b64encode(JPEG_BYTES).decode("ascii")

        response = client.post("/api/gemini", json={"image": image, "mime_type": "image/png"})

        assert response.status_code == 200
        parts = backend.requests[0].contents[0].parts
        assert "PROCTORING_VIOLATION:" in parts[0].text
        assert parts[1].inline_data.mime_type == "image/png"
        assert parts[1].inline_data.data == image

    def test_invalid_body(self, client):
        assert client.post("/api/gemini", json={}).status_code == 400
        assert client.post("/api/gemini", content=b"not json").status_code == 400

    def test_missing_api_key(self, test_settings):
        def handler(request):
            raise AssertionError("no request expected without a key")

        app = create_app(settings=test_settings, backend=gemini_backend(handler, api_key=None))
        with TestClient(app) as client:
            response = client.post("/api/gemini", json={"contents": CONTENTS})

        assert response.status_code == 500
        assert response.json()["error"] == "Configuration Error"
        assert response.json()["message"] == "API key is not properly configured"

    def test_remote_error_status_is_forwarded(self, test_settings):
        def handler(request):
            return httpx.Response(403, json={"error": {"message": "API key not valid"}})

        app = create_app(settings=test_settings, backend=gemini_backend(handler))
        with TestClient(app) as client:
            response = client.post("/api/gemini", json={"contents": CONTENTS})

        assert response.status_code == 403
        assert response.json() == {
            "error": "Gemini API error",
            "message": "API key not valid",
            "details": {"status": 403, "statusText": "Forbidden"},
        }

    def test_transport_failure(self, test_settings):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        app = create_app(settings=test_settings, backend=gemini_backend(handler))
        with TestClient(app) as client:
            response = client.post("/api/gemini", json={"contents": CONTENTS})

        assert response.status_code == 500
        assert response.json()["error"] == "API Error"

    def test_bearer_credential_is_sent(self, test_settings):
        seen = {}

        def handler(request):
            seen["authorization"] = request.headers.get("authorization")
            seen["body"] = request.content
            return httpx.Response(200, json=text_response(""))

        app = create_app(settings=test_settings, backend=gemini_backend(handler))
        with TestClient(app) as client:
            client.post("/api/gemini", json={"contents": CONTENTS})

        assert seen["authorization"] == "Bearer test-key"
        assert b'"generationConfig"' in seen["body"]


class TestGeminiHealth:
    """Tests for GET /api/gemini."""

    def test_healthy(self, client):
        response = client.get("/api/gemini")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_unhealthy(self, test_settings):
        app = create_app(settings=test_settings, backend=MockModelBackend(healthy=False))
        with TestClient(app) as client:
            response = client.get("/api/gemini")

        assert response.status_code == 503
        assert response.json()["error"] == "Health Check Failed"


class TestAnalyzeRoute:
    """Tests for POST /api/analyze."""

    def test_returns_violations(self, client, data_url):
        response = client.post("/api/analyze", json={"image": data_url})

        assert response.status_code == 200
        types = [v["type"] for v in response.json()["violations"]]
        assert types == ["Looking Away", "Unauthorized Device"]

    def test_requires_image(self, client):
        response = client.post("/api/analyze", json={"contents": CONTENTS})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid Request"

    def test_non_object_model_reply(self, test_settings, data_url):
        """A 2xx JSON array from the model yields no violations, not a server error."""
        def handler(request):
            return httpx.Response(200, json=[{"candidates": []}])

        app = create_app(settings=test_settings, backend=gemini_backend(handler))
        with TestClient(app) as client:
            response = client.post("/api/analyze", json={"image": data_url})

        assert response.status_code == 200
        assert response.json() == {"violations": []}

    def test_model_failure_maps_to_error_body(self, test_settings, data_url):
        def handler(request):
            return httpx.Response(500, json={"error": {"message": "internal"}})

        app = create_app(settings=test_settings, backend=gemini_backend(handler))
        with TestClient(app) as client:
            response = client.post("/api/analyze", json={"image": data_url})

        assert response.status_code == 500
        assert response.json()["error"] == "Gemini API error"


class TestEdgeMiddleware:
    """Tests for security headers and rate limiting."""

    def test_security_headers_everywhere(self, client):
        response = client.get("/health")

        assert response.headers["x-frame-options"] == "SAMEORIGIN"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["permissions-policy"] == "camera=(self), microphone=(self), geolocation=()"
        assert "frame-ancestors 'none'" in response.headers["content-security-policy"]
        assert response.headers["server-timing"].startswith("total;dur=")
        assert "x-ratelimit-limit" not in response.headers

    def test_rate_limit_rejects_with_retry_after(self, test_settings, backend):
        limiter = RateLimiter(max_requests=3, window_seconds=60)
        app = create_app(settings=test_settings, backend=backend, rate_limiter=limiter)

        with TestClient(app) as client:
            allowed = [client.get("/api/gemini") for _ in range(3)]
            rejected = client.get("/api/gemini")
            unaffected = client.get("/health")

        assert [r.status_code for r in allowed] == [200, 200, 200]
        assert allowed[0].headers["x-ratelimit-limit"] == "3"
        assert allowed[0].headers["x-ratelimit-remaining"] == "2"

        assert rejected.status_code == 429
        body = rejected.json()
        assert body["error"] == "Too many requests"
        assert 1 <= body["retryAfter"] <= 60
        assert rejected.headers["retry-after"] == str(body["retryAfter"])
        assert rejected.headers["x-ratelimit-remaining"] == "0"
        assert rejected.headers["x-frame-options"] == "SAMEORIGIN"

        assert unaffected.status_code == 200

    def test_rate_limit_disabled(self, backend):
        from proctor_agent.config import Settings

        settings = Settings.model_validate({"model": {"backend": "mock"}, "rate_limit": {"enabled": False}})
        app = create_app(settings=settings, backend=backend)

        with TestClient(app) as client:
            response = client.get("/api/gemini")

        assert response.status_code == 200
        assert "x-ratelimit-limit" not in response.headers


class ClosedSocket:
    """WebSocket stand-in whose sends fail the way a closed socket does."""

    def __init__(self, error):
        self.error = error

    async def send_json(self, message):
        raise self.error


class TestOutboundPump:
    """Tests for the task that drains session signals into the socket."""

    @pytest.mark.parametrize("error", [
        RuntimeError('Cannot call "send" once a close message has been sent.'),
        WebSocketDisconnect(code=1001),
    ])
    def test_send_on_closed_socket_ends_quietly(self, error):
        async def scenario():
            queue = asyncio.Queue()
            queue.put_nowait({"type": "pong"})
            task = asyncio.create_task(_pump_outbound(ClosedSocket(error), queue))
            await asyncio.wait({task})
            return task

        task = asyncio.run(scenario())

        assert task.exception() is None


class TestProctorWebSocket:
    """Tests for the /ws/proctor session protocol."""

    def test_session_flow(self, client, data_url):
        with client.websocket_connect("/ws/proctor") as ws:
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            ws.send_json({"type": "config", "data": {"strictness": "high"}})
            assert ws.receive_json()["type"] == "warning"

            ws.send_json({"type": "connect"})
            assert ws.receive_json() == {"type": "open"}

            ws.send_json({"type": "config", "data": {"strictness": "high"}})
            assert ws.receive_json() == {"type": "config", "data": {"strictness": "high"}}

            ws.send_json({"type": "video_frame", "data": data_url, "metadata": {"width": 640, "height": 480}})
            first = ws.receive_json()
            second = ws.receive_json()
            assert first["type"] == second["type"] == "violation"
            assert [first["data"]["type"], second["data"]["type"]] == ["Looking Away", "Unauthorized Device"]

            ws.send_json({"type": "summary"})
            summary = ws.receive_json()
            assert summary["type"] == "summary"
            assert summary["data"]["total"] == 2

            ws.send_json({"type": "disconnect"})
            assert ws.receive_json() == {"type": "close"}

    def test_invalid_messages_reported(self, client):
        with client.websocket_connect("/ws/proctor") as ws:
            ws.send_text("not json")
            assert ws.receive_json()["data"]["kind"] == "InvalidMessage"

            ws.send_json({"type": "video_frame", "data": "%%%"})
            assert ws.receive_json()["data"]["kind"] == "InvalidFrame"

            ws.send_json({"type": "teleport"})
            assert ws.receive_json()["type"] == "warning"

    def test_connect_failure_reported(self, test_settings):
        app = create_app(settings=test_settings, backend=MockModelBackend(healthy=False))

        with TestClient(app) as client:
            with client.websocket_connect("/ws/proctor") as ws:
                ws.send_json({"type": "connect"})
                error = ws.receive_json()

        assert error["type"] == "error"
        assert error["data"]["kind"] == "ModelTransportError"
