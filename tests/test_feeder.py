"""
Frame Feeder Tests
==================

Image loading, message building and server message handling.
"""

import base64
import json

import pytest

from proctor_agent.stream import FrameFeeder, frame_message, load_frames

from conftest import JPEG_BYTES


@pytest.fixture
def image_dir(tmp_path):
    (tmp_path / "b.png").write_bytes(b"png-bytes")
    (tmp_path / "a.jpg").write_bytes(JPEG_BYTES)
    (tmp_path / "notes.txt").write_text("not an image")
    return tmp_path


def new_feeder(**options):
    return FrameFeeder("ws://localhost:8080/ws/proctor", [(JPEG_BYTES, "image/jpeg")], **options)


class TestLoadFrames:
    """Tests for load_frames."""

    def test_directory_sorted_and_filtered(self, image_dir):
        frames = load_frames(image_dir)

        assert frames == [(JPEG_BYTES, "image/jpeg"), (b"png-bytes", "image/png")]

    def test_single_file(self, image_dir):
        assert load_frames(image_dir / "b.png") == [(b"png-bytes", "image/png")]

    def test_missing_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_frames(tmp_path / "absent")

    def test_directory_without_images(self, tmp_path):
        (tmp_path / "readme.md").write_text("nothing here")

        with pytest.raises(ValueError, match="No image files"):
            load_frames(tmp_path)


class TestFrameMessage:
    """Tests for frame_message."""

    def test_data_url(self):
        message = frame_message(JPEG_BYTES, "image/jpeg")

        prefix, encoded = message["data"].split(",", 1)
        assert message["type"] == "video_frame"
        assert prefix == "data:image/jpeg;base64"
        assert base64.b64decode(encoded) == JPEG_BYTES
        assert "metadata" not in message

    def test_metadata(self):
        message = frame_message(JPEG_BYTES, metadata={"width": 640, "height": 480})
        assert message["metadata"] == {"width": 640, "height": 480}


class TestFrameFeeder:
    """Tests for FrameFeeder construction and message handling."""

    def test_validation(self):
        with pytest.raises(ValueError):
            FrameFeeder("ws://localhost/ws/proctor", [])
        with pytest.raises(ValueError):
            new_feeder(fps=0)

    def test_handle_messages_updates_metrics(self):
        seen = []
        feeder = new_feeder(on_message=seen.append)

        for message in (
            {"type": "open"},
            {"type": "config", "data": {"strictness": "high"}},
            {"type": "violation", "data": {"type": "Looking Away", "confidence": 0.9}},
            {"type": "violation", "data": {"type": "Unauthorized Device", "confidence": 0.9}},
            {"type": "warning", "data": {"message": "slow down"}},
            {"type": "error", "data": {"kind": "ModelAPIError", "message": "overloaded"}},
            {"type": "summary", "data": {"total": 2, "groups": []}},
            {"type": "close"},
        ):
            feeder._handle_message(json.dumps(message))

        metrics = feeder.metrics.to_dict()
        assert metrics["opened"] is True
        assert metrics["closed"] is True
        assert metrics["violations"] == 2
        assert metrics["warnings"] == 1
        assert metrics["errors"] == 1
        assert metrics["configs"] == 1
        assert len(seen) == 8
        assert feeder.messages == seen

    def test_bad_messages_counted(self):
        feeder = new_feeder()

        assert feeder._handle_message("not json") is None
        assert feeder._handle_message("[1, 2]") is None

        assert feeder.metrics.parse_errors == 2
        assert feeder.messages == []

    def test_stop(self):
        feeder = new_feeder()
        feeder.stop()
        assert feeder._stop_event.is_set()
