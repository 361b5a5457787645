"""Core types and DTOs for the streaming gateway."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from promptstream.core.config import settings


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ProviderTag(str, Enum):
    """Supported LLM vendors."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


# ---------------------------------------------------------------------------
# Provider configuration — validated before any network call
# ---------------------------------------------------------------------------


class ProviderConfig(BaseModel):
    """Connection and sampling settings for one vendor call."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    provider: ProviderTag
    api_key: str = Field(min_length=1)
    base_url: str
    model: str = Field(min_length=1)
    temperature: float = Field(0.7, ge=0, le=2)
    max_tokens: int = Field(2048, ge=1, le=32000)
    top_p: float = Field(1.0, ge=0, le=1)
    frequency_penalty: float = Field(0.0, ge=-2, le=2)
    presence_penalty: float = Field(0.0, ge=-2, le=2)
    system_message: str = ""

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Invalid base URL")
        return value


# Defaults per vendor (everything except the credential)
DEFAULT_PROVIDER_CONFIGS: dict[ProviderTag, dict[str, Any]] = {
    ProviderTag.OPENAI: {
        "provider": ProviderTag.OPENAI,
        "base_url": settings.openai_base_url,
        "model": "gpt-5",
        "temperature": 0.7,
        "max_tokens": 2048,
        "top_p": 1.0,
        "frequency_penalty": 0.0,
        "presence_penalty": 0.0,
        "system_message": "",
    },
    ProviderTag.ANTHROPIC: {
        "provider": ProviderTag.ANTHROPIC,
        "base_url": settings.anthropic_base_url,
        "model": "claude-3-5-sonnet-20241022",
        "temperature": 0.7,
        "max_tokens": 2048,
        "top_p": 1.0,
        "frequency_penalty": 0.0,
        "presence_penalty": 0.0,
        "system_message": "",
    },
    ProviderTag.GEMINI: {
        "provider": ProviderTag.GEMINI,
        "base_url": settings.gemini_base_url,
        "model": "gemini-1.5-flash",
        "temperature": 0.7,
        "max_tokens": 2048,
        "top_p": 1.0,
        "frequency_penalty": 0.0,
        "presence_penalty": 0.0,
        "system_message": "",
    },
}

# Known model ids per vendor
PROVIDER_MODELS: dict[ProviderTag, tuple[str, ...]] = {
    ProviderTag.OPENAI: (
        "gpt-5",
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
    ),
    ProviderTag.ANTHROPIC: (
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    ),
    ProviderTag.GEMINI: (
        "gemini-1.5-pro",
        "gemini-1.5-flash",
        "gemini-1.0-pro",
    ),
}


def default_config(provider: ProviderTag | str, api_key: str, **overrides: Any) -> dict[str, Any]:
    """Build an unvalidated config mapping from vendor defaults plus overrides."""
    tag = ProviderTag(provider)
    return {**DEFAULT_PROVIDER_CONFIGS[tag], "api_key": api_key, **overrides}


# ---------------------------------------------------------------------------
# Request / chunk — the streaming contract
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InferenceRequest:
    """One admitted prompt, immutable once created by the RequestManager."""

    id: str
    prompt: str
    config: ProviderConfig
    timestamp: int = field(default_factory=now_ms)

    @property
    def provider(self) -> ProviderTag:
        return self.config.provider


@dataclass(frozen=True)
class StreamChunk:
    """Normalized content delta. ``is_complete`` marks the terminal chunk."""

    request_id: str
    content: str = ""
    is_complete: bool = False
    token_count: int | None = None


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


@dataclass
class NormalizedError:
    """Provider-neutral error description."""

    code: str
    message: str
    retryable: bool = False
    status_code: int | None = None
    details: Any = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.details is not None:
            data["details"] = self.details
        return data


# ---------------------------------------------------------------------------
# Model listing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelPricing:
    input: float  # USD per 1M tokens
    output: float


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    description: str = ""
    context_length: int | None = None
    max_output_tokens: int | None = None
    pricing: ModelPricing | None = None


@dataclass
class AvailableModelsResult:
    models: list[ModelInfo]
    cached: bool
    timestamp: int


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


@dataclass
class RateLimitConfig:
    """Admission limits for one vendor."""

    max_requests_per_minute: int = 60
    max_concurrent_requests: int = 5
    backoff_multiplier: float = 2.0
    max_backoff_ms: int = 30_000
    retry_attempts: int = 3  # Advisory only: the gateway never retries on its own


@dataclass
class RateLimiterState:
    request_count: int = 0
    last_reset_time: int = 0  # epoch ms
    active_requests: int = 0
    backoff_until: int = 0  # epoch ms


# Per-vendor overrides merged onto RateLimitConfig defaults
PROVIDER_RATE_LIMITS: dict[str, dict[str, Any]] = {
    ProviderTag.OPENAI.value: {
        "max_requests_per_minute": 60,
        "max_concurrent_requests": 5,
    },
    ProviderTag.ANTHROPIC.value: {
        "max_requests_per_minute": 50,
        "max_concurrent_requests": 3,
    },
    ProviderTag.GEMINI.value: {
        "max_requests_per_minute": 60,
        "max_concurrent_requests": 4,
    },
}


# ---------------------------------------------------------------------------
# Aggregated response — what a presentation layer renders
# ---------------------------------------------------------------------------


@dataclass
class ResponseMetadata:
    provider: ProviderTag
    model: str
    timestamp: int = field(default_factory=now_ms)
    token_count: int | None = None
    duration_ms: int | None = None


@dataclass
class InferenceResponse:
    """Accumulated result of one stream, or its non-streaming error state."""

    request_id: str
    metadata: ResponseMetadata
    content: str = ""
    is_complete: bool = False
    is_streaming: bool = False
    error: NormalizedError | None = None

    @property
    def can_retry(self) -> bool:
        return self.error is not None and self.error.retryable

    def to_dict(self) -> dict:
        """Serialize to JSON-compatible dict for the presentation layer."""
        metadata = asdict(self.metadata)
        metadata["provider"] = self.metadata.provider.value
        return {
            "request_id": self.request_id,
            "content": self.content,
            "is_complete": self.is_complete,
            "is_streaming": self.is_streaming,
            "error": self.error.to_dict() if self.error else None,
            "metadata": metadata,
        }
