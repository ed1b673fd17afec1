"""
Analysis Request Schema
=======================

Payload models for the remote vision model (Gemini generateContent).

One AnalysisRequest is built per analyzed frame and never persisted.
Generation parameters are fixed server-side: low temperature and a small
token budget keep the model deterministic and terse, which minimizes
hallucinated violations.

Wire Format:
    {
        "contents": [{
            "parts": [
                {"text": "<proctoring instructions>"},
                {"inline_data": {"mime_type": "image/jpeg", "data": "<base64>"}}
            ]
        }],
        "generationConfig": {
            "temperature": 0.1, "topP": 1.0, "topK": 32, "maxOutputTokens": 256
        },
        "safetySettings": [{
            "category": "HARM_CATEGORY_DANGEROUS_CONTENT",
            "threshold": "BLOCK_LOW_AND_ABOVE"
        }]
    }

Inbound Contract (POST /api/gemini, POST /api/analyze):
    Either {"contents": [...]} or {"image": "<base64 or data URL>", "mime_type": "image/jpeg"}.
    Any caller-supplied generation parameters are ignored.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class GenerationConfig(BaseModel):
    """Sampling parameters sent with every analysis request."""

    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    top_p: float = Field(default=1.0, gt=0.0, le=1.0, alias="topP")
    top_k: int = Field(default=32, ge=1, alias="topK")
    max_output_tokens: int = Field(default=256, ge=1, alias="maxOutputTokens")

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True


class SafetySetting(BaseModel):
    """Content safety filter for one harm category."""

    category: str = Field(default="HARM_CATEGORY_DANGEROUS_CONTENT")
    threshold: str = Field(default="BLOCK_LOW_AND_ABOVE")


class InlineData(BaseModel):
    """Base64 image embedded in a content part."""

    mime_type: str = Field(default="image/jpeg")
    data: str = Field(..., min_length=1, description="Base64-encoded image bytes")


class Part(BaseModel):
    """A single content part: text or inline image."""

    text: Optional[str] = None
    inline_data: Optional[InlineData] = None


class Content(BaseModel):
    """One conversational turn made of parts."""

    parts: List[Part] = Field(default_factory=list)


class AnalysisRequest(BaseModel):
    """
    Complete request body for one analysis cycle.

    Attributes:
        contents: Prompt and image parts
        generation_config: Fixed sampling parameters
        safety_settings: Safety filter settings
    """

    contents: List[Content] = Field(..., min_length=1)
    generation_config: GenerationConfig = Field(
        default_factory=GenerationConfig,
        alias="generationConfig",
    )
    safety_settings: List[SafetySetting] = Field(
        default_factory=lambda: [SafetySetting()],
        alias="safetySettings",
    )

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True

    @classmethod
    def for_image(
        cls,
        image_b64: str,
        mime_type: str = "image/jpeg",
        prompt: Optional[str] = None,
        generation: Optional[GenerationConfig] = None,
        safety: Optional[List[SafetySetting]] = None,
    ) -> "AnalysisRequest":
        """
        Build a request for a single image.

        Args:
            image_b64: Base64-encoded image data (no data URL prefix)
            mime_type: Image MIME type
            prompt: Optional instruction text placed before the image
            generation: Sampling parameters (defaults if None)
            safety: Safety settings (defaults if None)
        """
        parts: List[Part] = []
        if prompt:
            parts.append(Part(text=prompt))
        parts.append(Part(inline_data=InlineData(mime_type=mime_type, data=image_b64)))

        return cls(
            contents=[Content(parts=parts)],
            generation_config=generation or GenerationConfig(),
            safety_settings=safety if safety is not None else [SafetySetting()],
        )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON body expected by the remote model."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ImagePayload(BaseModel):
    """
    Inbound body for the /api routes.

    Exactly one of `contents` or `image` must be provided.
    """

    contents: Optional[List[Content]] = None
    image: Optional[str] = Field(
        default=None,
        description="Base64 image or data URL",
    )
    mime_type: str = Field(default="image/jpeg")

    @model_validator(mode="after")
    def check_one_source(self) -> "ImagePayload":
        if (self.contents is None) == (self.image is None):
            raise ValueError("provide exactly one of 'contents' or 'image'")
        if self.contents is not None and not self.contents:
            raise ValueError("'contents' must not be empty")
        return self
