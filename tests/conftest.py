"""
Test Configuration
==================

Pytest fixtures and test configuration for ProctorAgent.
"""

import asyncio
import base64

import pytest


# Not a decodable image; nothing in the pipeline looks at pixels
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00fake-frame\xff\xd9"

VIOLATION_TEXT = (
    "PROCTORING_VIOLATION: Looking Away\n"
    "PROCTORING_VIOLATION: Unauthorized Device"
)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class GatedHealthBackend:
    """Mock backend whose reachability check waits for a release."""

    def __init__(self, delay: float = 0.0) -> None:
        from proctor_agent.analysis.backend import MockModelBackend

        self.inner = MockModelBackend(response_text=VIOLATION_TEXT)
        self.delay = delay
        self.release = asyncio.Event()

    async def generate_content(self, request):
        return await self.inner.generate_content(request)

    async def check_health(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await self.release.wait()

    async def aclose(self) -> None:
        pass


@pytest.fixture
def jpeg_bytes():
    """Raw bytes standing in for a captured JPEG."""
    return JPEG_BYTES


@pytest.fixture
def data_url():
    """Browser-style data URL for the sample frame."""
    return "data:image/jpeg;base64," + base64.b64encode(JPEG_BYTES).decode("ascii")


@pytest.fixture
def sample_frame():
    """Provide a sample Frame for testing."""
    from proctor_agent.stream.frame import Frame

    return Frame(image=JPEG_BYTES, timestamp=1707321234.567, width=640, height=480, quality=0.8)


@pytest.fixture
def violation_text():
    """Model reply with two marker lines."""
    return VIOLATION_TEXT


@pytest.fixture
def mock_backend():
    """Mock backend replying with two violations."""
    from proctor_agent.analysis.backend import MockModelBackend

    return MockModelBackend(response_text=VIOLATION_TEXT)


@pytest.fixture
def clock():
    """Manually advanced clock starting at t=1000."""
    return FakeClock()


@pytest.fixture
def test_settings():
    """Settings with the mock backend and immediate analysis cadence."""
    from proctor_agent.config import Settings

    return Settings.model_validate({
        "model": {"backend": "mock", "mock_response_text": VIOLATION_TEXT},
        "analysis": {"interval_seconds": 0.0},
    })
