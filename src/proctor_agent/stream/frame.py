"""
Frame Data Model
=================

Internal frame representation for the analysis pipeline.

Design Rules:
    - This is the ONLY frame format passed to the throttle and analyzer
    - Holds raw image bytes; encoding for the wire happens in the analyzer
    - Does NOT decode pixels (no image library involved)
"""

import base64
import binascii
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional


DATA_URL_PREFIX = "data:"


@dataclass(frozen=True, slots=True)
class Frame:
    """
    A single captured image sample.

    Immutable (frozen) so a frame handed to the analyzer cannot be
    modified by the producer afterwards.

    Attributes:
        image: Raw image bytes (conventionally JPEG)
        timestamp: UNIX timestamp when the frame was captured or received
        mime_type: Image MIME type
        width: Optional pixel width reported by the capture source
        height: Optional pixel height reported by the capture source
        quality: Optional encoder quality in [0, 1]
    """

    image: bytes
    timestamp: float
    mime_type: str = "image/jpeg"
    width: Optional[int] = None
    height: Optional[int] = None
    quality: Optional[float] = None

    @classmethod
    def from_data_url(
        cls,
        data: str,
        metadata: Optional[Mapping[str, Any]] = None,
        timestamp: Optional[float] = None,
    ) -> "Frame":
        """
        Build a frame from a browser data URL or bare base64 string.

        Args:
            data: "data:image/jpeg;base64,<...>" or plain base64
            metadata: Optional {width, height, quality} from the capture widget
            timestamp: Capture time (defaults to now)

        Raises:
            ValueError: If the payload is empty or not valid base64
        """
        mime_type = "image/jpeg"
        payload = data.strip()

        if payload.startswith(DATA_URL_PREFIX):
            header, _, payload = payload.partition(",")
            declared = header[len(DATA_URL_PREFIX):].split(";", 1)[0]
            if declared:
                mime_type = declared

        if not payload:
            raise ValueError("Frame payload is empty")

        try:
            image = base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Frame payload is not valid base64: {e}") from e

        metadata = metadata or {}
        return cls(
            image=image,
            timestamp=timestamp if timestamp is not None else time.time(),
            mime_type=mime_type,
            width=metadata.get("width"),
            height=metadata.get("height"),
            quality=metadata.get("quality"),
        )

    @property
    def image_b64(self) -> str:
        """Image bytes encoded as base64 text."""
        return base64.b64encode(self.image).decode("ascii")

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(timestamp={self.timestamp:.3f}, "
            f"mime_type={self.mime_type}, "
            f"bytes={len(self.image)})"
        )
