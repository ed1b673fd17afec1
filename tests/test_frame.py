"""
Frame Tests
===========

Decoding of browser data URLs into frames.
"""

import base64

import pytest

from proctor_agent.stream import Frame

from conftest import JPEG_BYTES


class TestFromDataUrl:
    """Tests for Frame.from_data_url."""

    def test_data_url(self, data_url):
        frame = Frame.from_data_url(data_url, {"width": 640, "height": 480, "quality": 0.8}, timestamp=5.0)

        assert frame.image == JPEG_BYTES
        assert frame.mime_type == "image/jpeg"
        assert frame.timestamp == 5.0
        assert (frame.width, frame.height, frame.quality) == (640, 480, 0.8)

    def test_declared_mime_type(self):
        encoded = base64.b64encode(b"png").decode("ascii")

        frame = Frame.from_data_url(f"data:image/png;base64,{encoded}")

        assert frame.mime_type == "image/png"

    def test_bare_base64(self):
        frame = Frame.from_data_url(base64.b64encode(JPEG_BYTES).decode("ascii"))

        assert frame.image == JPEG_BYTES
        assert frame.mime_type == "image/jpeg"
        assert frame.width is None

    @pytest.mark.parametrize("data", ["", "   ", "data:image/jpeg;base64,", "not base64!"])
    def test_invalid_payload(self, data):
        with pytest.raises(ValueError):
            Frame.from_data_url(data)

    def test_image_b64_round_trip(self, sample_frame):
        assert base64.b64decode(sample_frame.image_b64) == sample_frame.image

    def test_repr_omits_image(self, sample_frame):
        assert "bytes=" in repr(sample_frame)
        assert "JFIF" not in repr(sample_frame)
