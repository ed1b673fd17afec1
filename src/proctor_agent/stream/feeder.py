"""
Frame Feeder
============

WebSocket client that replays still images into a proctoring session.

Stands in for the browser capture widget during development:
    - Connects to the agent's /ws/proctor endpoint
    - Opens the session and optionally pushes a config message
    - Sends image files as video_frame data URLs at a fixed FPS
    - Logs violations, errors and warnings coming back

Design Rules:
    - Does NOT decode or resize images (bytes are sent as-is)
    - Sending and receiving run concurrently on the same connection
    - Exposes metrics for the integration script
"""

import asyncio
import base64
import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedOK,
)


logger = logging.getLogger(__name__)


IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png", ".webp")

# (image bytes, mime type)
FeedImage = Tuple[bytes, str]


def load_frames(path: Union[str, Path]) -> List[FeedImage]:
    """
    Load images from a file or a directory (sorted by name).

    Raises:
        FileNotFoundError: If the path does not exist
        ValueError: If no image files were found
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No such file or directory: {path}")

    if path.is_dir():
        files = sorted(p for p in path.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
    else:
        files = [path]

    frames: List[FeedImage] = []
    for file in files:
        mime_type = mimetypes.guess_type(file.name)[0] or "image/jpeg"
        frames.append((file.read_bytes(), mime_type))

    if not frames:
        raise ValueError(f"No image files found in {path}")
    return frames


def frame_message(
    image: bytes,
    mime_type: str = "image/jpeg",
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build a video_frame message carrying a data URL."""
    encoded = base64.b64encode(image).decode("ascii")
    message: Dict[str, Any] = {
        "type": "video_frame",
        "data": f"data:{mime_type};base64,{encoded}",
    }
    if metadata:
        message["metadata"] = metadata
    return message


class FeederMetrics:
    """Metrics for FrameFeeder observability."""

    __slots__ = (
        "frames_sent",
        "violations",
        "errors",
        "warnings",
        "configs",
        "parse_errors",
        "opened",
        "closed",
    )

    def __init__(self) -> None:
        self.frames_sent: int = 0
        self.violations: int = 0
        self.errors: int = 0
        self.warnings: int = 0
        self.configs: int = 0
        self.parse_errors: int = 0
        self.opened: bool = False
        self.closed: bool = False

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_sent": self.frames_sent,
            "violations": self.violations,
            "errors": self.errors,
            "warnings": self.warnings,
            "configs": self.configs,
            "parse_errors": self.parse_errors,
            "opened": self.opened,
            "closed": self.closed,
        }


class FrameFeeder:
    """
    Replays frames into /ws/proctor.

    Attributes:
        url: WebSocket URL of the agent
        frames: Images to send, cycled in order
        fps: Frames per second to send
        metrics: Operational metrics
        messages: Every server message received, in order

    Example:
        feeder = FrameFeeder(
            url="ws://localhost:8080/ws/proctor",
            frames=load_frames("samples/"),
            fps=1.0,
        )
        await feeder.run(duration_seconds=30)
        print(feeder.metrics.to_dict())
    """

    def __init__(
        self,
        url: str,
        frames: Sequence[FeedImage],
        fps: float = 1.0,
        config: Optional[Dict[str, Any]] = None,
        on_message: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> None:
        """
        Initialize frame feeder.

        Args:
            url: WebSocket URL (e.g. ws://localhost:8080/ws/proctor)
            frames: Non-empty list of (bytes, mime type)
            fps: Send rate. Must be > 0.
            config: Optional config payload sent once the session opens
            on_message: Optional callback for every server message
        """
        if not frames:
            raise ValueError("frames must not be empty")
        if fps <= 0:
            raise ValueError("fps must be > 0")

        self.url = url
        self.frames = list(frames)
        self.fps = fps
        self.config = config
        self.on_message = on_message

        self.metrics = FeederMetrics()
        self.messages: List[Dict[str, Any]] = []

        self._opened = asyncio.Event()
        self._stop_event = asyncio.Event()

    async def run(self, duration_seconds: Optional[float] = None, max_frames: Optional[int] = None) -> None:
        """
        Connect, feed frames and collect replies.

        Stops after duration_seconds, after max_frames, when stop() is
        called, or when the server closes the connection.
        """
        logger.info(f"FrameFeeder connecting to {self.url}")

        async with websockets.connect(self.url, close_timeout=5) as ws:
            receiver = asyncio.create_task(self._receive(ws), name="feeder_receive")
            try:
                await ws.send(json.dumps({"type": "connect"}))
                await self._feed(ws, duration_seconds, max_frames)
                await ws.send(json.dumps({"type": "summary"}))
                await ws.send(json.dumps({"type": "disconnect"}))
                # Give the server a moment to answer before closing
                await asyncio.sleep(0.5)
            finally:
                receiver.cancel()
                try:
                    await receiver
                except asyncio.CancelledError:
                    pass

        logger.info(f"FrameFeeder finished: {self.metrics.to_dict()}")

    def stop(self) -> None:
        """Signal the feed loop to exit."""
        self._stop_event.set()

    async def _feed(self, ws: Any, duration_seconds: Optional[float], max_frames: Optional[int]) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration_seconds if duration_seconds else None
        interval = 1.0 / self.fps
        config_sent = self.config is None
        index = 0

        while not self._stop_event.is_set():
            if deadline is not None and loop.time() >= deadline:
                break
            if max_frames is not None and self.metrics.frames_sent >= max_frames:
                break

            if not config_sent and self._opened.is_set():
                await ws.send(json.dumps({"type": "config", "data": self.config}))
                config_sent = True

            image, mime_type = self.frames[index % len(self.frames)]
            await ws.send(json.dumps(frame_message(image, mime_type)))
            self.metrics.frames_sent += 1
            index += 1

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def _receive(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._handle_message(raw)
        except ConnectionClosedOK:
            logger.info("Connection closed normally")
        except ConnectionClosed as e:
            logger.warning(f"Connection closed: {e}")
        finally:
            self._stop_event.set()

    def _handle_message(self, raw: Union[str, bytes]) -> Optional[Dict[str, Any]]:
        """
        Parse one server message and update metrics.

        Returns:
            Parsed message, or None on parse error
        """
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            self.metrics.parse_errors += 1
            logger.error(f"Failed to parse server message: {e}")
            return None

        if not isinstance(message, dict):
            self.metrics.parse_errors += 1
            logger.error(f"Unexpected server message: {message!r}")
            return None

        self.messages.append(message)
        kind = message.get("type")
        data = message.get("data") or {}

        if kind == "open":
            self.metrics.opened = True
            self._opened.set()
            logger.info("Session open")
        elif kind == "close":
            self.metrics.closed = True
            logger.info("Session closed")
        elif kind == "violation":
            self.metrics.violations += 1
            logger.warning(f"VIOLATION: {data.get('type')} (confidence={data.get('confidence')})")
        elif kind == "error":
            self.metrics.errors += 1
            logger.error(f"Server error: {data.get('kind')}: {data.get('message')}")
        elif kind == "warning":
            self.metrics.warnings += 1
            logger.warning(f"Server warning: {data.get('message')}")
        elif kind == "config":
            self.metrics.configs += 1
            logger.info(f"Config applied: {data}")
        elif kind == "summary":
            logger.info(f"Summary: {json.dumps(data)}")
        else:
            logger.debug(f"Unhandled message type: {kind}")

        if self.on_message is not None:
            self.on_message(message)
        return message
