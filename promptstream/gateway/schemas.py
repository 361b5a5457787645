"""Validation layer — schema checks for stream frames and provider configs.

Every ``validate_*`` function returns a ``ValidationResult`` and never raises:
vendors interleave structural events that legitimately fail a content-shaped
schema, and one bad frame must not end a stream.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ValidationError

from promptstream.gateway.errors import VALIDATION_ERROR
from promptstream.gateway.types import ProviderConfig

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass
class ValidationErrorInfo:
    code: str
    message: str
    details: Any = None


@dataclass
class ValidationResult(Generic[T]):
    """Either ``success=True`` with ``data`` or ``success=False`` with ``error``."""

    success: bool
    data: T | None = None
    error: ValidationErrorInfo | None = None

    @classmethod
    def ok(cls, data: T) -> ValidationResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: str, message: str, details: Any = None) -> ValidationResult[T]:
        return cls(success=False, error=ValidationErrorInfo(code=code, message=message, details=details))


# ---------------------------------------------------------------------------
# OpenAI chat.completion.chunk
# ---------------------------------------------------------------------------


class OpenAIDelta(BaseModel):
    content: str | None = None
    role: str | None = None


class OpenAIChoice(BaseModel):
    index: int = 0
    delta: OpenAIDelta
    finish_reason: str | None


class OpenAIUsage(BaseModel):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class OpenAIStreamChunk(BaseModel):
    id: str | None = None
    object: Literal["chat.completion.chunk"] | None = None
    created: int | None = None
    model: str | None = None
    choices: list[OpenAIChoice]
    usage: OpenAIUsage | None = None


class OpenAIErrorDetail(BaseModel):
    message: str
    type: str | None = None
    param: str | None = None
    code: str | None = None


class OpenAIErrorBody(BaseModel):
    error: OpenAIErrorDetail


# ---------------------------------------------------------------------------
# Anthropic messages stream events
# ---------------------------------------------------------------------------

AnthropicEventType = Literal[
    "message_start",
    "content_block_start",
    "content_block_delta",
    "content_block_stop",
    "message_delta",
    "message_stop",
]


class AnthropicUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class AnthropicTextBlock(BaseModel):
    type: Literal["text"]
    text: str


class AnthropicMessage(BaseModel):
    id: str | None = None
    type: Literal["message"] = "message"
    role: Literal["assistant"] = "assistant"
    content: list[AnthropicTextBlock] = []
    model: str | None = None
    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: AnthropicUsage | None = None


class AnthropicDelta(BaseModel):
    type: Literal["text_delta"] | None = None
    text: str | None = None
    stop_reason: str | None = None
    stop_sequence: str | None = None


class AnthropicStreamChunk(BaseModel):
    type: AnthropicEventType
    message: AnthropicMessage | None = None
    delta: AnthropicDelta | None = None
    content_block: AnthropicTextBlock | None = None
    index: int | None = None
    usage: AnthropicUsage | None = None


class AnthropicErrorDetail(BaseModel):
    type: str
    message: str


class AnthropicErrorBody(BaseModel):
    type: Literal["error"]
    error: AnthropicErrorDetail


# ---------------------------------------------------------------------------
# Gemini streamGenerateContent
# ---------------------------------------------------------------------------


class GeminiPart(BaseModel):
    text: str


class GeminiContent(BaseModel):
    parts: list[GeminiPart]
    role: str | None = None


class GeminiSafetyRating(BaseModel):
    category: str
    probability: str


class GeminiCandidate(BaseModel):
    content: GeminiContent | None = None  # absent on SAFETY-blocked candidates
    finishReason: str | None = None
    index: int = 0
    safetyRatings: list[GeminiSafetyRating] | None = None


class GeminiPromptFeedback(BaseModel):
    safetyRatings: list[GeminiSafetyRating] = []
    blockReason: str | None = None


class GeminiUsageMetadata(BaseModel):
    promptTokenCount: int | None = None
    candidatesTokenCount: int | None = None
    totalTokenCount: int | None = None


class GeminiStreamChunk(BaseModel):
    candidates: list[GeminiCandidate]
    promptFeedback: GeminiPromptFeedback | None = None
    usageMetadata: GeminiUsageMetadata | None = None


class GeminiErrorDetail(BaseModel):
    code: int
    message: str
    status: str


class GeminiErrorBody(BaseModel):
    error: GeminiErrorDetail


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _validate(model: type[M], data: Any, message: str) -> ValidationResult[M]:
    try:
        return ValidationResult.ok(model.model_validate(data))
    except ValidationError as exc:
        return ValidationResult.fail(VALIDATION_ERROR, message, exc.errors(include_url=False))


def validate_openai_response(data: Any) -> ValidationResult[OpenAIStreamChunk]:
    return _validate(OpenAIStreamChunk, data, "Invalid OpenAI response format")


def validate_anthropic_response(data: Any) -> ValidationResult[AnthropicStreamChunk]:
    return _validate(AnthropicStreamChunk, data, "Invalid Anthropic response format")


def validate_gemini_response(data: Any) -> ValidationResult[GeminiStreamChunk]:
    return _validate(GeminiStreamChunk, data, "Invalid Gemini response format")


def validate_provider_config(data: ProviderConfig | Mapping[str, Any]) -> ValidationResult[ProviderConfig]:
    """Check a config object against the generic schema (ranges, URL, required fields)."""
    if isinstance(data, ProviderConfig):
        return ValidationResult.ok(data)
    if not isinstance(data, Mapping):
        return ValidationResult.fail(VALIDATION_ERROR, "Invalid LLM configuration", "config must be a mapping")
    return _validate(ProviderConfig, dict(data), "Invalid LLM configuration")
