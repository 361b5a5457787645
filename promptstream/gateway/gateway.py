"""Streaming Gateway — orchestrator integrating all gateway components.

Main entry point for streaming prompts to LLM vendors:
  1. Validates the config and creates the request (RequestManager)
  2. Waits for a rate-limit slot for the vendor (ProviderRateLimiters)
  3. Streams normalized chunks from the vendor adapter
  4. Feeds the outcome back into the limiter (success clears backoff,
     HTTP 429 enters backoff)
  5. Releases the slot on every exit path

Failed requests are never retried here; the raised ProviderError says
whether a retry makes sense.

Usage:
    async with StreamingGateway() as gateway:
        config = default_config("openai", api_key="sk-...")
        async for chunk in gateway.stream("Hello", config):
            print(chunk.content, end="")
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from contextlib import aclosing
from typing import Any

import httpx

from promptstream.core.config import settings, validate_settings
from promptstream.gateway.errors import RATE_LIMIT_TIMEOUT, ProviderError
from promptstream.gateway.normalizer import apply_chunk, error_response, start_response
from promptstream.gateway.rate_limiter import ProviderRateLimiters
from promptstream.gateway.request_manager import RequestManager
from promptstream.gateway.types import (
    InferenceRequest,
    InferenceResponse,
    NormalizedError,
    ProviderConfig,
    StreamChunk,
    now_ms,
)
from promptstream.gateway.vendor_adapters import ProviderAdapter, build_adapters

logger = logging.getLogger(__name__)


class StreamingGateway:
    """Owns the request manager, the per-vendor limiters and the adapters.

    Integrates:
      - RequestManager: provider registry, cancellation
      - ProviderRateLimiters: per-vendor admission and backoff
      - VendorAdapters: protocol-specific streaming calls
      - Normalizer: chunk aggregation for ``collect``
    """

    def __init__(
        self,
        adapters: Iterable[ProviderAdapter] | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        rate_limits: Mapping[str, Mapping[str, Any]] | None = None,
        availability_timeout_seconds: float | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Args:
            adapters: Adapters to register; one per vendor by default
            client: Shared HTTP client; created and owned here when omitted
            rate_limits: Per-provider RateLimitConfig overrides
            availability_timeout_seconds: Max wait for a limiter slot
            clock: Epoch-ms clock for the limiters
        """
        self._owns_client = False
        if adapters is None:
            if client is None:
                client = httpx.AsyncClient(timeout=settings.request_timeout_seconds)
                self._owns_client = True
            adapters = build_adapters(client=client)
        self._client = client

        self.manager = RequestManager(adapters)
        self.limiters = ProviderRateLimiters(clock=clock)
        for provider, overrides in (rate_limits or {}).items():
            self.limiters.get_limiter(provider, **overrides)

        timeout = (
            availability_timeout_seconds
            if availability_timeout_seconds is not None
            else settings.availability_timeout_seconds
        )
        self.availability_timeout_ms = int(timeout * 1000)
        self._closed = False

    async def __aenter__(self) -> StreamingGateway:
        validate_settings()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def prepare(
        self,
        prompt: str,
        config: ProviderConfig | Mapping[str, Any],
        request_id: str | None = None,
    ) -> InferenceRequest:
        """Validate and build a request without sending it.

        Raises ProviderError (non-retryable) when the config is rejected.
        """
        result = self.manager.create_request(prompt, config, request_id)
        if not result.success:
            raise ProviderError(
                NormalizedError(result.error.code, result.error.message, retryable=False, details=result.error.details)
            )
        return result.data

    async def stream(
        self,
        prompt: str,
        config: ProviderConfig | Mapping[str, Any],
        request_id: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        request = self.prepare(prompt, config, request_id)
        async with aclosing(self.stream_request(request)) as chunks:
            async for chunk in chunks:
                yield chunk

    async def stream_request(self, request: InferenceRequest) -> AsyncIterator[StreamChunk]:
        """Admit ``request`` through its vendor limiter and stream its chunks."""
        provider = request.provider.value
        limiter = self.limiters.get_limiter(provider)

        admitted = await limiter.wait_for_availability(timeout_ms=self.availability_timeout_ms)
        if not admitted or not limiter.acquire_request():
            raise ProviderError(
                NormalizedError(
                    RATE_LIMIT_TIMEOUT,
                    f"Rate limit wait for {provider} timed out after {self.availability_timeout_ms}ms",
                    retryable=True,
                    details=limiter.get_stats(),
                )
            )

        try:
            async with aclosing(self.manager.send_streaming_request(request)) as chunks:
                async for chunk in chunks:
                    if chunk.is_complete:
                        limiter.handle_successful_request()
                    yield chunk
        except ProviderError as e:
            if e.is_rate_limited:
                limiter.handle_rate_limit_response(e.retry_after_seconds)
            logger.warning("Request %s failed: %s (%s)", request.id, e, e.code)
            raise
        finally:
            limiter.release_request()

    async def collect(
        self,
        prompt: str,
        config: ProviderConfig | Mapping[str, Any],
        request_id: str | None = None,
    ) -> InferenceResponse:
        """Stream to completion and return the aggregate.

        A failure after admission returns the non-streaming error state with
        whatever content had arrived; an invalid config still raises.
        """
        request = self.prepare(prompt, config, request_id)
        response = start_response(request)
        try:
            async with aclosing(self.stream_request(request)) as chunks:
                async for chunk in chunks:
                    apply_chunk(response, chunk)
        except ProviderError as e:
            return error_response(request, e.error, partial=response)
        return response

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def cancel(self, request_id: str) -> bool:
        return self.manager.cancel_request(request_id)

    def cancel_all(self) -> int:
        return self.manager.cancel_all_requests()

    def get_status(self) -> dict[str, Any]:
        return {
            "providers": [tag.value for tag in self.manager.get_registered_providers()],
            "active_requests": self.manager.get_active_request_count(),
            "active_request_ids": self.manager.get_active_request_ids(),
            "provider_stats": self.manager.get_provider_stats(),
            "rate_limits": self.limiters.get_all_stats(),
        }

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        cancelled = self.manager.cancel_all_requests()
        self.manager.dispose()
        self.limiters.dispose()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
        logger.info("Streaming gateway closed (%d requests cancelled)", cancelled)
