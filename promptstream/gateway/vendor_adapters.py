"""Vendor-Specific Adapters — protocol-level handling for each LLM vendor.

Each adapter translates an InferenceRequest into the vendor's streaming HTTP
call and turns the vendor's SSE frames into normalized StreamChunks.

Vendor-specific behaviors:
  - OpenAI: Bearer token, ``data: [DONE]`` sentinel, any model name accepted
  - Anthropic: ``x-api-key`` + ``anthropic-version`` headers, typed
    ``event:`` lines, ``message_stop`` ends the stream, 8192 output-token cap
  - Gemini: credential in the ``key`` query parameter (never a header),
    ``finishReason`` ends the stream, SAFETY finish surfaced as a warning

Adapters never retry. Every failure leaves as one ProviderError with a
``retryable`` flag for the caller to act on.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from contextlib import aclosing, asynccontextmanager
from typing import Any, Protocol, runtime_checkable

import httpx

from promptstream.core.config import settings
from promptstream.gateway.errors import (
    INVALID_API_KEY,
    INVALID_MAX_TOKENS,
    INVALID_PROVIDER,
    UNSUPPORTED_MODEL,
    ProviderError,
    is_retryable_status,
    network_error,
    parse_retry_after,
    timeout_error,
)
from promptstream.gateway.model_cache import ModelCache
from promptstream.gateway.schemas import (
    AnthropicErrorBody,
    GeminiErrorBody,
    OpenAIErrorBody,
    ValidationResult,
    validate_anthropic_response,
    validate_gemini_response,
    validate_openai_response,
    validate_provider_config,
)
from promptstream.gateway.stream_processor import StreamProcessor
from promptstream.gateway.types import (
    PROVIDER_MODELS,
    AvailableModelsResult,
    InferenceRequest,
    ModelInfo,
    ModelPricing,
    NormalizedError,
    ProviderConfig,
    ProviderTag,
    StreamChunk,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Capability interface every vendor adapter satisfies."""

    name: ProviderTag

    def send_streaming_request(self, request: InferenceRequest) -> AsyncIterator[StreamChunk]: ...

    def validate_config(self, config: ProviderConfig | Mapping[str, Any]) -> ValidationResult[ProviderConfig]: ...

    async def get_available_models(self, api_key: str, base_url: str | None = None) -> AvailableModelsResult: ...

    def clear_model_cache(self) -> None: ...


class BaseVendorAdapter(ABC):
    """Shared transport, error classification and config checks."""

    name: ProviderTag
    label: str
    default_base_url: str
    done_sentinel: str | None = None
    terminal_events: frozenset[str] = frozenset()
    supported_models: tuple[str, ...] | None = None  # None: pass any model through
    max_output_tokens: int | None = None

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        model_cache: ModelCache | None = None,
    ):
        self._client = client
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._model_cache = model_cache if model_cache is not None else ModelCache()
        self._processor = StreamProcessor(
            self.parse_stream_chunk,
            vendor_label=self.label,
            done_sentinel=self.done_sentinel,
            terminal_events=self.terminal_events,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def send_streaming_request(self, request: InferenceRequest) -> AsyncIterator[StreamChunk]:
        """Stream normalized chunks for one request.

        Raises ProviderError for transport, timeout and HTTP status failures.
        The response body is closed on every exit path, including the
        consumer abandoning the iterator early.
        """
        self._log_request(request)
        config = request.config

        async with self._open_stream(
            "POST",
            self.build_url(config),
            headers=self.create_headers(config.api_key),
            params=self.build_params(config),
            json=self.create_request_body(request),
        ) as response:
            async with aclosing(self._processor.process(self._body(response), request.id)) as chunks:
                async for chunk in chunks:
                    if chunk.is_complete:
                        logger.debug(
                            "[%s] Request %s completed (tokens=%s)",
                            self.name.value,
                            request.id,
                            chunk.token_count,
                        )
                    yield chunk

    @asynccontextmanager
    async def _client_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    @asynccontextmanager
    async def _open_stream(self, method: str, url: str, **kwargs: Any) -> AsyncIterator[httpx.Response]:
        """Open a streaming response, mapping transport failures to ProviderError.

        The wall-clock timeout covers connecting and receiving the response
        head; each later body read is bounded by the httpx read timeout.
        """
        async with self._client_scope() as client:
            http_request = client.build_request(method, url, timeout=self.timeout, **kwargs)
            try:
                response = await asyncio.wait_for(client.send(http_request, stream=True), timeout=self.timeout)
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                raise timeout_error(self.timeout) from e
            except httpx.RequestError as e:
                raise network_error(e) from e

            try:
                if response.is_error:
                    await response.aread()
                    raise self.handle_http_error(response)
                yield response
            except httpx.TimeoutException as e:
                raise timeout_error(self.timeout) from e
            except httpx.RequestError as e:
                raise network_error(e) from e
            finally:
                await response.aclose()

    @staticmethod
    def _body(response: httpx.Response) -> AsyncIterator[bytes] | None:
        if response.status_code == 204:
            return None
        return response.aiter_bytes()

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        async with self._open_stream("GET", url, **kwargs) as response:
            await response.aread()
            return response.json()

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def create_headers(self, api_key: str, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": settings.user_agent,
            **(extra or {}),
            **self.auth_headers(api_key),
        }

    @abstractmethod
    def auth_headers(self, api_key: str) -> dict[str, str]: ...

    def build_params(self, config: ProviderConfig) -> dict[str, str]:
        return {}

    @abstractmethod
    def build_url(self, config: ProviderConfig) -> str: ...

    @abstractmethod
    def create_request_body(self, request: InferenceRequest) -> dict[str, Any]: ...

    # ------------------------------------------------------------------
    # Frame parsing
    # ------------------------------------------------------------------

    @abstractmethod
    def parse_stream_chunk(self, data: str, request_id: str) -> StreamChunk | None:
        """Map one raw ``data:`` payload to a chunk, or ``None`` to drop it."""

    @staticmethod
    def _decode_frame(data: str) -> Any:
        # JSON errors propagate to the stream processor, which logs and skips the frame
        return json.loads(data)

    def _rejected(self, result: ValidationResult) -> bool:
        if result.success:
            return False
        logger.debug("Dropping %s frame: %s", self.label, result.error.message)
        return True

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    def handle_http_error(self, response: httpx.Response) -> ProviderError:
        status = response.status_code
        message = f"{self.label} API error: {status} {response.reason_phrase}"
        details: Any = None

        body = response.text
        if body:
            try:
                details = json.loads(body)
            except ValueError:
                details = body
            else:
                message = self.extract_error_message(details) or message

        retry_after = parse_retry_after(response.headers.get("retry-after"))
        logger.warning("%s request failed with HTTP %d: %s", self.label, status, message)
        return ProviderError(
            NormalizedError(
                code=f"{self.name.value.upper()}_HTTP_{status}",
                message=message,
                retryable=is_retryable_status(status),
                status_code=status,
                details=details,
            ),
            retry_after_seconds=retry_after,
        )

    def extract_error_message(self, body: Any) -> str | None:
        if not isinstance(body, dict):
            return None
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(body.get("message"), str):
            return body["message"]
        return None

    # ------------------------------------------------------------------
    # Config validation
    # ------------------------------------------------------------------

    def validate_config(self, config: ProviderConfig | Mapping[str, Any]) -> ValidationResult[ProviderConfig]:
        base = validate_provider_config(config)
        if not base.success:
            return base
        validated = base.data

        if validated.provider != self.name:
            return ValidationResult.fail(
                INVALID_PROVIDER,
                f'Provider must be "{self.name.value}" for {self.label} provider',
            )

        key_problem = self.check_api_key(validated.api_key)
        if key_problem:
            return ValidationResult.fail(INVALID_API_KEY, key_problem)

        if self.supported_models is not None and validated.model not in self.supported_models:
            return ValidationResult.fail(
                UNSUPPORTED_MODEL,
                f'Model "{validated.model}" is not supported. '
                f"Supported models: {', '.join(self.supported_models)}",
            )

        if validated.base_url.rstrip("/") != self.default_base_url.rstrip("/"):
            logger.warning("Non-standard %s base URL: %s", self.label, validated.base_url)

        if self.max_output_tokens is not None and validated.max_tokens > self.max_output_tokens:
            return ValidationResult.fail(
                INVALID_MAX_TOKENS,
                f"{self.label} models support a maximum of {self.max_output_tokens} output tokens",
            )

        return ValidationResult.ok(validated)

    @abstractmethod
    def check_api_key(self, api_key: str) -> str | None:
        """Return a problem description, or ``None`` when the key looks right."""

    # ------------------------------------------------------------------
    # Model listing
    # ------------------------------------------------------------------

    async def get_available_models(self, api_key: str, base_url: str | None = None) -> AvailableModelsResult:
        key = ModelCache.make_key(self.name.value, api_key, base_url)
        return await self._model_cache.get_or_fetch(
            key,
            lambda: self.fetch_available_models(api_key, base_url),
            self.get_fallback_models,
        )

    def clear_model_cache(self) -> None:
        self._model_cache.clear()

    @abstractmethod
    async def fetch_available_models(self, api_key: str, base_url: str | None = None) -> list[ModelInfo]: ...

    @abstractmethod
    def get_fallback_models(self) -> list[ModelInfo]: ...

    # ------------------------------------------------------------------

    def _log_request(self, request: InferenceRequest) -> None:
        logger.debug(
            "[%s] Sending request %s model=%s prompt=%r",
            self.name.value,
            request.id,
            request.config.model,
            request.prompt[:100],
        )


# ---------------------------------------------------------------------------
# OpenAI Adapter
# ---------------------------------------------------------------------------

# Known models; pricing is USD per 1M tokens
_OPENAI_CATALOG: dict[str, ModelInfo] = {
    "gpt-5": ModelInfo("gpt-5", "GPT-5", "Next generation flagship model", 200_000, 8192, ModelPricing(10.0, 30.0)),
    "gpt-4o": ModelInfo("gpt-4o", "GPT-4o", "Most advanced multimodal model", 128_000, 4096, ModelPricing(5.0, 15.0)),
    "gpt-4o-mini": ModelInfo(
        "gpt-4o-mini", "GPT-4o Mini", "Affordable and intelligent small model", 128_000, 16_384, ModelPricing(0.15, 0.6)
    ),
    "gpt-4-turbo": ModelInfo(
        "gpt-4-turbo", "GPT-4 Turbo", "Previous generation flagship model", 128_000, 4096, ModelPricing(10.0, 30.0)
    ),
    "gpt-4": ModelInfo("gpt-4", "GPT-4", "Original GPT-4 model", 8192, 4096, ModelPricing(30.0, 60.0)),
    "gpt-3.5-turbo": ModelInfo(
        "gpt-3.5-turbo", "GPT-3.5 Turbo", "Fast and affordable model", 16_385, 4096, ModelPricing(0.5, 1.5)
    ),
}


def _openai_priority(model_id: str) -> int:
    if "gpt-4o" in model_id:
        return 1
    if "gpt-4" in model_id:
        return 2
    if "gpt-3.5" in model_id:
        return 3
    return 4


class OpenAIAdapter(BaseVendorAdapter):
    """OpenAI Chat Completions streaming adapter."""

    name = ProviderTag.OPENAI
    label = "OpenAI"
    default_base_url = settings.openai_base_url
    done_sentinel = "[DONE]"

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def build_url(self, config: ProviderConfig) -> str:
        return f"{config.base_url.rstrip('/')}/chat/completions"

    def create_request_body(self, request: InferenceRequest) -> dict[str, Any]:
        config = request.config
        messages = []
        if config.system_message.strip():
            messages.append({"role": "system", "content": config.system_message})
        messages.append({"role": "user", "content": request.prompt})

        return {
            "model": config.model,
            "messages": messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "top_p": config.top_p,
            "frequency_penalty": config.frequency_penalty,
            "presence_penalty": config.presence_penalty,
            "stream": True,
        }

    def parse_stream_chunk(self, data: str, request_id: str) -> StreamChunk | None:
        parsed = self._decode_frame(data)

        validation = validate_openai_response(parsed)
        if self._rejected(validation):
            return None

        chunk = validation.data
        if not chunk.choices:
            return None

        choice = chunk.choices[0]
        is_complete = choice.finish_reason is not None
        token_count = None
        if is_complete and chunk.usage is not None:
            token_count = chunk.usage.total_tokens

        return StreamChunk(
            request_id=request_id,
            content=choice.delta.content or "",
            is_complete=is_complete,
            token_count=token_count,
        )

    def extract_error_message(self, body: Any) -> str | None:
        try:
            return OpenAIErrorBody.model_validate(body).error.message
        except ValueError:
            return super().extract_error_message(body)

    def check_api_key(self, api_key: str) -> str | None:
        if not api_key.startswith("sk-"):
            return 'OpenAI API key must start with "sk-"'
        return None

    async def fetch_available_models(self, api_key: str, base_url: str | None = None) -> list[ModelInfo]:
        url = f"{(base_url or self.default_base_url).rstrip('/')}/models"
        data = await self._get_json(url, headers=self.create_headers(api_key))

        entries = data.get("data") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise ValueError("Invalid response format from OpenAI models API")

        models = [
            _OPENAI_CATALOG.get(model_id)
            or ModelInfo(model_id, model_id, "OpenAI language model", 4096, 4096, ModelPricing(1.0, 2.0))
            for model_id in (entry.get("id", "") for entry in entries if isinstance(entry, dict))
            if model_id.startswith("gpt-") or "chat" in model_id or "turbo" in model_id
        ]
        return sorted(models, key=lambda m: _openai_priority(m.id))

    def get_fallback_models(self) -> list[ModelInfo]:
        return list(_OPENAI_CATALOG.values())


# ---------------------------------------------------------------------------
# Anthropic Adapter
# ---------------------------------------------------------------------------

_ANTHROPIC_CATALOG: dict[str, ModelInfo] = {
    "claude-3-5-sonnet-20241022": ModelInfo(
        "claude-3-5-sonnet-20241022",
        "Claude 3.5 Sonnet",
        "Most intelligent Claude 3.5 model",
        200_000,
        8192,
        ModelPricing(3.0, 15.0),
    ),
    "claude-3-5-haiku-20241022": ModelInfo(
        "claude-3-5-haiku-20241022",
        "Claude 3.5 Haiku",
        "Fastest Claude 3.5 model",
        200_000,
        8192,
        ModelPricing(0.8, 4.0),
    ),
    "claude-3-opus-20240229": ModelInfo(
        "claude-3-opus-20240229",
        "Claude 3 Opus",
        "Most capable Claude 3 model",
        200_000,
        4096,
        ModelPricing(15.0, 75.0),
    ),
    "claude-3-sonnet-20240229": ModelInfo(
        "claude-3-sonnet-20240229",
        "Claude 3 Sonnet",
        "Balanced Claude 3 model",
        200_000,
        4096,
        ModelPricing(3.0, 15.0),
    ),
    "claude-3-haiku-20240307": ModelInfo(
        "claude-3-haiku-20240307",
        "Claude 3 Haiku",
        "Compact Claude 3 model",
        200_000,
        4096,
        ModelPricing(0.25, 1.25),
    ),
}

# In-stream error types that are worth retrying
_ANTHROPIC_RETRYABLE_STREAM_ERRORS = ("overloaded_error", "api_error", "rate_limit_error")


class AnthropicAdapter(BaseVendorAdapter):
    """Anthropic Messages API streaming adapter."""

    name = ProviderTag.ANTHROPIC
    label = "Anthropic"
    default_base_url = settings.anthropic_base_url
    terminal_events = frozenset({"message_stop"})
    supported_models = PROVIDER_MODELS[ProviderTag.ANTHROPIC]
    max_output_tokens = 8192

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"x-api-key": api_key}

    def create_headers(self, api_key: str, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        return super().create_headers(api_key, {"anthropic-version": settings.anthropic_version, **(extra or {})})

    def build_url(self, config: ProviderConfig) -> str:
        return f"{config.base_url.rstrip('/')}/v1/messages"

    def create_request_body(self, request: InferenceRequest) -> dict[str, Any]:
        config = request.config
        body: dict[str, Any] = {
            "model": config.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "top_p": config.top_p,
            "stream": True,
        }
        # System prompt is a top-level field, not a message
        if config.system_message.strip():
            body["system"] = config.system_message
        return body

    def parse_stream_chunk(self, data: str, request_id: str) -> StreamChunk | None:
        parsed = self._decode_frame(data)

        if isinstance(parsed, dict) and parsed.get("type") == "error":
            self._raise_stream_error(parsed)

        validation = validate_anthropic_response(parsed)
        if self._rejected(validation):
            return None

        chunk = validation.data
        if chunk.type == "message_start":
            return StreamChunk(request_id=request_id, content="", is_complete=False)

        if chunk.type == "content_block_delta":
            if chunk.delta is not None and chunk.delta.text:
                return StreamChunk(request_id=request_id, content=chunk.delta.text, is_complete=False)
            return None

        if chunk.type == "message_delta":
            if chunk.delta is None or not chunk.delta.stop_reason:
                return None
            usage = chunk.usage or (chunk.message.usage if chunk.message else None)
            token_count = usage.input_tokens + usage.output_tokens if usage and usage.output_tokens else None
            return StreamChunk(request_id=request_id, content="", is_complete=True, token_count=token_count)

        if chunk.type == "message_stop":
            return StreamChunk(request_id=request_id, content="", is_complete=True)

        return None

    def _raise_stream_error(self, parsed: dict) -> None:
        try:
            body = AnthropicErrorBody.model_validate(parsed)
        except ValueError:
            logger.warning("Malformed Anthropic error event dropped")
            return
        raise ProviderError(
            NormalizedError(
                code="ANTHROPIC_STREAM_ERROR",
                message=body.error.message,
                retryable=body.error.type in _ANTHROPIC_RETRYABLE_STREAM_ERRORS,
                details=parsed,
            )
        )

    def extract_error_message(self, body: Any) -> str | None:
        try:
            return AnthropicErrorBody.model_validate(body).error.message
        except ValueError:
            return super().extract_error_message(body)

    def check_api_key(self, api_key: str) -> str | None:
        if not api_key.startswith("sk-ant-"):
            return 'Anthropic API key must start with "sk-ant-"'
        return None

    async def fetch_available_models(self, api_key: str, base_url: str | None = None) -> list[ModelInfo]:
        url = f"{(base_url or self.default_base_url).rstrip('/')}/v1/models"
        data = await self._get_json(url, headers=self.create_headers(api_key))

        entries = data.get("data") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise ValueError("Invalid response format from Anthropic models API")

        models: list[ModelInfo] = []
        for entry in entries:
            model_id = entry.get("id") if isinstance(entry, dict) else None
            if not model_id:
                continue
            known = _ANTHROPIC_CATALOG.get(model_id)
            models.append(
                known or ModelInfo(model_id, entry.get("display_name") or model_id, "Anthropic Claude model")
            )
        return models

    def get_fallback_models(self) -> list[ModelInfo]:
        return list(_ANTHROPIC_CATALOG.values())


# ---------------------------------------------------------------------------
# Gemini Adapter (Google AI)
# ---------------------------------------------------------------------------

_GEMINI_CATALOG: dict[str, ModelInfo] = {
    "gemini-1.5-pro": ModelInfo(
        "gemini-1.5-pro",
        "Gemini 1.5 Pro",
        "Most capable model for complex reasoning tasks",
        2_000_000,
        8192,
        ModelPricing(1.25, 5.0),
    ),
    "gemini-1.5-flash": ModelInfo(
        "gemini-1.5-flash",
        "Gemini 1.5 Flash",
        "Fast and efficient model for everyday tasks",
        1_000_000,
        8192,
        ModelPricing(0.075, 0.3),
    ),
    "gemini-1.0-pro": ModelInfo(
        "gemini-1.0-pro",
        "Gemini 1.0 Pro",
        "Previous generation model",
        32_768,
        2048,
        ModelPricing(0.5, 1.5),
    ),
}


def _gemini_priority(model_id: str) -> int:
    if "gemini-1.5-pro" in model_id:
        return 1
    if "gemini-1.5-flash" in model_id:
        return 2
    if "gemini-1.0-pro" in model_id:
        return 3
    return 4


class GeminiAdapter(BaseVendorAdapter):
    """Google Gemini streamGenerateContent adapter (SSE mode)."""

    name = ProviderTag.GEMINI
    label = "Gemini"
    default_base_url = settings.gemini_base_url
    supported_models = PROVIDER_MODELS[ProviderTag.GEMINI]
    max_output_tokens = 8192

    def auth_headers(self, api_key: str) -> dict[str, str]:
        # Gemini takes the key as a query parameter, never as a header
        return {}

    def build_params(self, config: ProviderConfig) -> dict[str, str]:
        return {"alt": "sse", "key": config.api_key}

    def build_url(self, config: ProviderConfig) -> str:
        return f"{config.base_url.rstrip('/')}/models/{config.model}:streamGenerateContent"

    def create_request_body(self, request: InferenceRequest) -> dict[str, Any]:
        config = request.config
        body: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "generationConfig": {
                "temperature": config.temperature,
                "maxOutputTokens": config.max_tokens,
                "topP": config.top_p,
            },
        }
        # System instruction (separate from contents in Gemini API)
        if config.system_message.strip():
            body["systemInstruction"] = {"parts": [{"text": config.system_message}]}
        return body

    def parse_stream_chunk(self, data: str, request_id: str) -> StreamChunk | None:
        parsed = self._decode_frame(data)

        validation = validate_gemini_response(parsed)
        if self._rejected(validation):
            return None

        chunk = validation.data
        if not chunk.candidates:
            return None

        candidate = chunk.candidates[0]
        content = ""
        if candidate.content is not None:
            content = "".join(part.text for part in candidate.content.parts)

        is_complete = candidate.finishReason is not None
        if candidate.finishReason == "SAFETY":
            logger.warning("Gemini safety filter triggered for %s", request_id)

        token_count = None
        if is_complete and chunk.usageMetadata is not None:
            token_count = chunk.usageMetadata.totalTokenCount

        return StreamChunk(request_id=request_id, content=content, is_complete=is_complete, token_count=token_count)

    def extract_error_message(self, body: Any) -> str | None:
        try:
            return GeminiErrorBody.model_validate(body).error.message
        except ValueError:
            return super().extract_error_message(body)

    def check_api_key(self, api_key: str) -> str | None:
        if len(api_key) < 20:
            return "Gemini API key appears to be too short"
        return None

    async def fetch_available_models(self, api_key: str, base_url: str | None = None) -> list[ModelInfo]:
        url = f"{(base_url or self.default_base_url).rstrip('/')}/models"
        data = await self._get_json(url, headers=self.create_headers(api_key), params={"key": api_key})

        entries = data.get("models") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise ValueError("Invalid response format from Gemini models API")

        models: list[ModelInfo] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            name = entry.get("name", "")
            methods = entry.get("supportedGenerationMethods") or []
            if not name or "generateContent" not in methods or "embedding" in name:
                continue
            model_id = name.removeprefix("models/")
            known = _GEMINI_CATALOG.get(model_id)
            models.append(
                known
                or ModelInfo(
                    id=model_id,
                    name=entry.get("displayName") or model_id,
                    description=entry.get("description") or "Google Gemini language model",
                    context_length=entry.get("inputTokenLimit", 32_768),
                    max_output_tokens=entry.get("outputTokenLimit", 2048),
                    pricing=ModelPricing(0.5, 1.5),
                )
            )
        return sorted(models, key=lambda m: _gemini_priority(m.id))

    def get_fallback_models(self) -> list[ModelInfo]:
        return list(_GEMINI_CATALOG.values())


# ---------------------------------------------------------------------------
# Adapter registry
# ---------------------------------------------------------------------------

ADAPTER_REGISTRY: dict[ProviderTag, type[BaseVendorAdapter]] = {
    ProviderTag.OPENAI: OpenAIAdapter,
    ProviderTag.ANTHROPIC: AnthropicAdapter,
    ProviderTag.GEMINI: GeminiAdapter,
}


def get_adapter(provider: ProviderTag | str, **kwargs: Any) -> BaseVendorAdapter:
    """Factory: build the adapter for a provider tag."""
    try:
        tag = ProviderTag(provider)
    except ValueError:
        raise ValueError(f"No adapter registered for provider: {provider}") from None
    cls = ADAPTER_REGISTRY.get(tag)
    if cls is None:
        raise ValueError(f"No adapter registered for provider: {provider}")
    return cls(**kwargs)


def build_adapters(**kwargs: Any) -> list[BaseVendorAdapter]:
    """One adapter per registered vendor, sharing the same constructor kwargs."""
    return [get_adapter(tag, **kwargs) for tag in ADAPTER_REGISTRY]
