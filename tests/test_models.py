"""
Model Tests
===========

Violation events, request payloads and session configuration.
"""

import pytest
from pydantic import ValidationError

from proctor_agent.models import (
    AnalysisRequest,
    GenerationConfig,
    ImagePayload,
    SessionConfig,
    Strictness,
    ViolationCategory,
    ViolationEvent,
)


class TestViolationEvent:
    """Tests for ViolationEvent."""

    def test_confidence_bounds(self):
        """Confidence must lie in [0, 1]."""
        with pytest.raises(ValidationError):
            ViolationEvent(type="Looking Away", confidence=1.5)
        with pytest.raises(ValidationError):
            ViolationEvent(type="Looking Away", confidence=-0.1)

    def test_type_required(self):
        """An empty type is rejected."""
        with pytest.raises(ValidationError):
            ViolationEvent(type="", confidence=0.9)

    def test_immutable(self):
        """Events cannot be modified after creation."""
        event = ViolationEvent(type="Looking Away", confidence=0.9)

        with pytest.raises(ValidationError):
            event.type = "Other"

    def test_timestamp_format(self):
        """Timestamps are ISO-8601 UTC with milliseconds."""
        event = ViolationEvent(type="Looking Away", confidence=0.9)

        assert event.timestamp.endswith("Z")
        assert "T" in event.timestamp
        assert len(event.timestamp.split(".")[-1]) == 4  # "123Z"

    def test_json_dump(self):
        """JSON form carries the four public fields."""
        event = ViolationEvent(type="Looking Away", confidence=0.9, details="raw")

        data = event.model_dump(mode="json")

        assert set(data) == {"type", "timestamp", "confidence", "details"}


class TestViolationCategory:
    """Tests for category classification."""

    @pytest.mark.parametrize("violation_type,expected", [
        ("Looking Away", ViolationCategory.LOOKING_AWAY),
        ("Multiple Faces Detected", ViolationCategory.MULTIPLE_FACES),
        ("multiple persons in frame", ViolationCategory.MULTIPLE_FACES),
        ("Low Engagement", ViolationCategory.LOW_ENGAGEMENT),
        ("Suspicious Movement - glancing left", ViolationCategory.SUSPICIOUS_MOVEMENT),
        ("Unauthorized Device", ViolationCategory.UNAUTHORIZED_DEVICE),
        ("Talking to someone", ViolationCategory.OTHER),
    ])
    def test_classify(self, violation_type, expected):
        """Free text maps onto known categories by substring."""
        assert ViolationCategory.classify(violation_type) is expected

    def test_display_names(self):
        """Interviewer-facing names."""
        assert ViolationCategory.MULTIPLE_FACES.display_name == "Multiple Persons Detected"
        assert ViolationCategory.SUSPICIOUS_MOVEMENT.display_name == "Suspicious Activity"

    def test_event_category(self):
        """Events expose their category."""
        event = ViolationEvent(type="Unauthorized Device", confidence=0.9)
        assert event.category is ViolationCategory.UNAUTHORIZED_DEVICE


class TestAnalysisRequest:
    """Tests for the model request payload."""

    def test_for_image_places_prompt_first(self):
        """Prompt text precedes the inline image."""
        request = AnalysisRequest.for_image("aGVsbG8=", prompt="Inspect this")

        parts = request.contents[0].parts
        assert parts[0].text == "Inspect this"
        assert parts[1].inline_data.data == "aGVsbG8="
        assert parts[1].inline_data.mime_type == "image/jpeg"

    def test_payload_uses_wire_names(self):
        """Serialized payload uses the remote API's field names."""
        payload = AnalysisRequest.for_image("aGVsbG8=").to_payload()

        assert payload["generationConfig"] == {
            "temperature": 0.1,
            "topP": 1.0,
            "topK": 32,
            "maxOutputTokens": 256,
        }
        assert payload["safetySettings"] == [{
            "category": "HARM_CATEGORY_DANGEROUS_CONTENT",
            "threshold": "BLOCK_LOW_AND_ABOVE",
        }]
        assert "text" not in payload["contents"][0]["parts"][0]

    def test_generation_config_accepts_both_names(self):
        """Wire aliases and Python names both populate the model."""
        assert GenerationConfig(topK=16).top_k == 16
        assert GenerationConfig(top_k=8).top_k == 8


class TestImagePayload:
    """Tests for the inbound /api body."""

    def test_image_only(self):
        payload = ImagePayload.model_validate({"image": "aGVsbG8="})
        assert payload.contents is None

    def test_exactly_one_source(self):
        """Neither or both sources are rejected."""
        with pytest.raises(ValidationError):
            ImagePayload.model_validate({})
        with pytest.raises(ValidationError):
            ImagePayload.model_validate({
                "image": "aGVsbG8=",
                "contents": [{"parts": [{"text": "hi"}]}],
            })

    def test_empty_contents_rejected(self):
        with pytest.raises(ValidationError):
            ImagePayload.model_validate({"contents": []})


class TestSessionConfig:
    """Tests for runtime session configuration."""

    def test_partial_config(self):
        """Only supplied fields are set."""
        config = SessionConfig.model_validate({"strictness": "high"})

        assert config.strictness is Strictness.HIGH
        assert config.confidence_threshold is None

    def test_unknown_fields_ignored(self):
        config = SessionConfig.model_validate({"theme": "dark", "confidence_threshold": 0.5})
        assert config.confidence_threshold == 0.5

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            SessionConfig.model_validate({"strictness": "extreme"})
        with pytest.raises(ValidationError):
            SessionConfig.model_validate({"confidence_threshold": 2})
