"""
ProctorAgent Main Application
=============================

FastAPI entry point for the interview proctoring agent.

Pipeline per session:
    WebSocket frames -> ProctorSession -> FrameThrottle -> FrameAnalyzer
        -> (remote vision model) -> violations -> listeners -> WebSocket

Endpoints:
    GET  /            - Service information
    GET  /health      - Liveness probe (is process alive?)
    GET  /metrics     - Sessions, analysis counters, rate limiter table
    POST /api/gemini  - Proxy to the vision model (server-side parameters)
    GET  /api/gemini  - Model reachability check
    POST /api/analyze - One analysis cycle for a single image
    WS   /ws/proctor  - Proctoring session (frames in, violations out)
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, AsyncIterator, Dict, Optional, Set

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from proctor_agent.config import Settings
from proctor_agent.config import settings as default_settings
from proctor_agent.analysis import (
    FrameAnalyzer,
    GeminiBackend,
    MockModelBackend,
    ModelAPIError,
    ModelBackend,
    ModelConfigurationError,
    ModelError,
    build_system_prompt,
    detection_thresholds,
)
from proctor_agent.edge import EdgeMiddleware, RateLimiter
from proctor_agent.models.request import AnalysisRequest, ImagePayload
from proctor_agent.observability import ViolationSummary
from proctor_agent.session import (
    CollectingListener,
    LoggingListener,
    OutboundQueueListener,
    ProctorSession,
)
from proctor_agent.stream import Frame


logger = logging.getLogger(__name__)


# =============================================================================
# Component Factories
# =============================================================================

def create_backend(settings: Settings) -> ModelBackend:
    """
    Create model backend based on config.

    The Gemini backend starts without a key; calls then fail with a
    configuration error instead of preventing startup.
    """
    backend = settings.model.backend

    if backend == "mock":
        logger.info("Using MockModelBackend")
        return MockModelBackend(response_text=settings.model.mock_response_text)

    elif backend == "gemini":
        logger.info(f"Using GeminiBackend: url={settings.model.api_url}")
        return GeminiBackend(
            api_key=settings.model.api_key,
            api_url=settings.model.api_url,
            health_url=settings.model.health_url,
            auth_scheme=settings.model.auth_scheme,
            timeout_seconds=settings.model.request_timeout_seconds,
        )

    else:
        raise ValueError(f"Unknown model backend: {backend}")


def create_rate_limiter(settings: Settings) -> Optional[RateLimiter]:
    """Create the edge rate limiter, or None when disabled."""
    if not settings.rate_limit.enabled:
        logger.info("Rate limiting disabled")
        return None
    return RateLimiter(
        max_requests=settings.rate_limit.max_requests,
        window_seconds=settings.rate_limit.window_seconds,
    )


# =============================================================================
# Error Mapping
# =============================================================================

def model_error_response(error: Exception) -> JSONResponse:
    """Translate a model failure into the proxy's JSON error body."""
    if isinstance(error, ModelConfigurationError):
        logger.error(f"Model configuration error: {error}")
        return JSONResponse(
            {
                "error": "Configuration Error",
                "message": "API key is not properly configured",
                "details": str(error),
            },
            status_code=500,
        )

    if isinstance(error, ModelAPIError):
        logger.error(f"Gemini API error: {error}")
        return JSONResponse(
            {
                "error": "Gemini API error",
                "message": error.message,
                "details": error.details,
            },
            status_code=error.status_code,
        )

    logger.error(f"Model call failed: {error}")
    return JSONResponse(
        {"error": "API Error", "message": str(error)},
        status_code=500,
    )


def invalid_request(message: str) -> JSONResponse:
    return JSONResponse(
        {"error": "Invalid Request", "message": message},
        status_code=400,
    )


async def read_image_payload(request: Request) -> ImagePayload:
    """
    Parse and validate an /api request body.

    Raises:
        ValueError: If the body is not JSON or not a valid ImagePayload
    """
    try:
        body = await request.json()
    except ValueError as e:
        raise ValueError("Request body must be valid JSON") from e

    try:
        return ImagePayload.model_validate(body)
    except ValidationError as e:
        raise ValueError(str(e)) from e


def payload_frame(payload: ImagePayload) -> Frame:
    """
    Build a frame from the payload's image.

    A data URL declares its own MIME type; bare base64 uses mime_type.
    """
    if payload.image is None:
        raise ValueError("'image' is required for analysis")

    frame = Frame.from_data_url(payload.image)
    if not payload.image.lstrip().startswith("data:"):
        frame = replace(frame, mime_type=payload.mime_type)
    return frame


# =============================================================================
# HTTP Endpoints
# =============================================================================

router = APIRouter()


@router.get("/")
async def root(request: Request) -> JSONResponse:
    """Service information endpoint."""
    settings: Settings = request.app.state.settings
    return JSONResponse({
        "service": "ProctorAgent",
        "version": settings.agent.version,
        "name": settings.agent.name,
        "status": "running",
        "model_backend": settings.model.backend,
        "strictness": settings.analysis.strictness.value,
    })


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - request.app.state.startup_time, 1),
    })


@router.get("/metrics")
async def metrics(request: Request) -> JSONResponse:
    """Detailed metrics for observability."""
    state = request.app.state
    sessions: Set[ProctorSession] = state.sessions

    backend_metrics: Dict[str, Any] = {}
    get_backend_metrics = getattr(state.backend, "get_metrics", None)
    if callable(get_backend_metrics):
        backend_metrics = get_backend_metrics()

    rate_limit_metrics: Dict[str, Any] = {}
    if state.rate_limiter is not None:
        rate_limit_metrics = state.rate_limiter.metrics()

    return JSONResponse({
        "uptime_seconds": round(time.time() - state.startup_time, 1),
        "model_backend": state.settings.model.backend,
        "active_sessions": len(sessions),
        "sessions": [session.metrics() for session in sessions],
        "backend": backend_metrics,
        "rate_limit": rate_limit_metrics,
    })


@router.post("/api/gemini")
async def gemini_proxy(request: Request) -> JSONResponse:
    """
    Forward an analysis request to the vision model.

    Generation parameters and safety settings are always replaced by the
    server's configured values.
    """
    start = time.perf_counter()
    settings: Settings = request.app.state.settings
    backend: ModelBackend = request.app.state.backend

    try:
        payload = await read_image_payload(request)
        if payload.contents is not None:
            analysis_request = AnalysisRequest(
                contents=payload.contents,
                generation_config=settings.model.generation,
                safety_settings=[settings.model.safety],
            )
        else:
            frame = payload_frame(payload)
            analysis_request = AnalysisRequest.for_image(
                frame.image_b64,
                mime_type=frame.mime_type,
                prompt=build_system_prompt(settings.analysis.strictness),
                generation=settings.model.generation,
                safety=[settings.model.safety],
            )
    except ValueError as e:
        return invalid_request(str(e))

    try:
        data = await backend.generate_content(analysis_request)
    except ModelError as e:
        return model_error_response(e)

    elapsed_ms = round((time.perf_counter() - start) * 1000)
    return JSONResponse(
        data,
        headers={
            "Server-Timing": f"total;dur={elapsed_ms}",
            "X-Response-Time": f"{elapsed_ms}ms",
            "Cache-Control": "no-store",
        },
    )


@router.get("/api/gemini")
async def gemini_health(request: Request) -> JSONResponse:
    """Check that the vision model is reachable with the configured key."""
    backend: ModelBackend = request.app.state.backend
    try:
        await backend.check_health()
    except ModelError as e:
        logger.error(f"Gemini health check failed: {e}")
        return JSONResponse(
            {"error": "Health Check Failed", "message": str(e)},
            status_code=503,
        )
    return JSONResponse({"status": "healthy"})


@router.post("/api/analyze")
async def analyze_image(request: Request) -> JSONResponse:
    """Run one analysis cycle for a single image and return its violations."""
    settings: Settings = request.app.state.settings
    backend: ModelBackend = request.app.state.backend

    try:
        payload = await read_image_payload(request)
        frame = payload_frame(payload)
    except ValueError as e:
        return invalid_request(str(e))

    strictness = settings.analysis.strictness
    collector = CollectingListener()
    analyzer = FrameAnalyzer(
        backend,
        sink=collector,
        confidence_threshold=settings.analysis.confidence_threshold,
        default_confidence=settings.analysis.default_confidence,
        category_thresholds=detection_thresholds(strictness),
        system_prompt=build_system_prompt(strictness),
        generation=settings.model.generation,
        safety=[settings.model.safety],
    )

    violations = await analyzer.analyze(frame)
    if collector.errors:
        return model_error_response(collector.errors[0])

    return JSONResponse({
        "violations": [event.model_dump(mode="json") for event in violations],
    })


# =============================================================================
# WebSocket Endpoints
# =============================================================================

async def _pump_outbound(websocket: WebSocket, queue: asyncio.Queue) -> None:
    """Send queued session signals to the client in order."""
    try:
        while True:
            message = await queue.get()
            await websocket.send_json(message)
    except WebSocketDisconnect:
        logger.debug("Outbound pump stopped: client went away")
    except RuntimeError as e:
        # Starlette raises RuntimeError when sending on a closed socket
        logger.debug(f"Outbound pump stopped: {e}")


async def _connect_session(session: ProctorSession) -> None:
    try:
        await session.connect()
    except ModelError as e:
        # Already delivered to listeners as an error signal
        logger.debug(f"[{session.session_id}] connect failed: {e}")


def handle_client_message(
    session: ProctorSession,
    outbound: OutboundQueueListener,
    summary: ViolationSummary,
    raw: str,
) -> Optional[asyncio.Task]:
    """
    Apply one client message to a session.

    Returns:
        The connect task when the message starts a connection, else None.
    """
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as e:
        outbound.push({"type": "error", "data": {"kind": "InvalidMessage", "message": str(e)}})
        return None

    if not isinstance(message, dict):
        outbound.push({"type": "error", "data": {"kind": "InvalidMessage", "message": "Expected a JSON object"}})
        return None

    kind = message.get("type")

    if kind == "connect":
        return asyncio.create_task(_connect_session(session), name="session_connect")

    if kind == "video_frame":
        metadata = message.get("metadata")
        try:
            frame = Frame.from_data_url(
                str(message.get("data") or ""),
                metadata if isinstance(metadata, dict) else None,
            )
        except ValueError as e:
            outbound.push({"type": "error", "data": {"kind": "InvalidFrame", "message": str(e)}})
            return None
        session.submit_frame(frame)

    elif kind == "config":
        try:
            session.send_config(message.get("data") or {})
        except ValidationError as e:
            outbound.push({"type": "error", "data": {"kind": "InvalidConfig", "message": str(e)}})

    elif kind == "disconnect":
        session.disconnect()

    elif kind == "ping":
        outbound.push({"type": "pong"})

    elif kind == "summary":
        outbound.push({"type": "summary", "data": summary.to_dict()})

    else:
        outbound.push({"type": "warning", "data": {"message": f"Unknown message type: {kind}"}})

    return None


@router.websocket("/ws/proctor")
async def proctor_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint for one proctoring session."""
    await websocket.accept()

    app_state = websocket.app.state
    session = ProctorSession.from_settings(app_state.backend, app_state.settings)
    outbound = OutboundQueueListener()
    summary = ViolationSummary()
    session.subscribe(LoggingListener(session.session_id))
    session.subscribe(outbound)
    session.subscribe(summary)

    app_state.sessions.add(session)
    logger.info(f"[{session.session_id}] client connected to /ws/proctor")

    sender = asyncio.create_task(_pump_outbound(websocket, outbound.queue), name="proctor_outbound")
    connect_task: Optional[asyncio.Task] = None

    try:
        while True:
            raw = await websocket.receive_text()
            task = handle_client_message(session, outbound, summary, raw)
            if task is not None:
                connect_task = task

    except WebSocketDisconnect:
        logger.info(f"[{session.session_id}] client disconnected from /ws/proctor")
    finally:
        session.disconnect()
        app_state.sessions.discard(session)

        for task in (connect_task, sender):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[ModelBackend] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration (the global settings if None)
        backend: Model backend (created from settings at startup if None)
        rate_limiter: Edge limiter (created from settings if None)
    """
    settings = settings or default_settings
    if rate_limiter is None:
        rate_limiter = create_rate_limiter(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan manager with graceful shutdown."""
        # Startup
        app.state.startup_time = time.time()
        logger.info(f"Starting {settings.agent.name} {settings.agent.version}")

        app.state.backend = backend or create_backend(settings)
        app.state.sessions = set()

        sweeper: Optional[asyncio.Task] = None
        if rate_limiter is not None:
            sweeper = asyncio.create_task(
                rate_limiter.run_sweeper(settings.rate_limit.sweep_interval_seconds),
                name="rate_limit_sweeper",
            )

        logger.info("All components started")

        yield

        # Shutdown
        logger.info("Shutting down gracefully...")

        for session in list(app.state.sessions):
            session.disconnect()
        app.state.sessions.clear()

        if sweeper:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass

        await app.state.backend.aclose()

        logger.info("Shutdown complete")

    app = FastAPI(
        title="ProctorAgent",
        description="Real-time interview proctoring backed by a remote vision model",
        version=settings.agent.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.rate_limiter = rate_limiter
    app.state.startup_time = time.time()

    app.add_middleware(
        EdgeMiddleware,
        rate_limiter=rate_limiter,
        route_prefix=settings.rate_limit.route_prefix,
        trust_forwarded_for=settings.rate_limit.trust_forwarded_for,
    )
    app.include_router(router)

    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "proctor_agent.main:app",
        host=default_settings.server.host,
        port=default_settings.server.port,
        reload=False,
    )
