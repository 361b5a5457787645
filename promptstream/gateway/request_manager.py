"""Request Manager — registry of in-flight requests with cooperative cancellation.

Owns the provider registry and one CancellationToken per active request.
Every chunk coming out of an adapter passes through ``send_streaming_request``,
which checks the request's token before forwarding it. A cancelled request
ends with exactly one synthesized terminal chunk and its adapter stream is
closed, which releases the HTTP response body.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import aclosing
from typing import Any

from promptstream.core import metrics
from promptstream.core.config import settings
from promptstream.gateway.errors import INVALID_CONFIG, PROVIDER_NOT_FOUND, ProviderError, provider_not_found
from promptstream.gateway.schemas import ValidationResult
from promptstream.gateway.types import (
    AvailableModelsResult,
    InferenceRequest,
    NormalizedError,
    ProviderConfig,
    ProviderTag,
    StreamChunk,
    now_ms,
)
from promptstream.gateway.vendor_adapters import ProviderAdapter

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_request_id(provider: ProviderTag | str) -> str:
    """``<provider>_<epoch ms>_<9 base36 chars>``"""
    name = getattr(provider, "value", provider)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{name}_{now_ms()}_{suffix}"


def _not_registered(provider: Any) -> ValidationResult:
    name = getattr(provider, "value", provider)
    return ValidationResult.fail(PROVIDER_NOT_FOUND, f"Provider '{name}' is not registered")


class CancellationToken:
    """One-shot cancel flag shared between the manager and a running stream."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class RequestManager:
    """Routes requests to registered adapters and tracks them until terminal."""

    def __init__(self, adapters: Iterable[ProviderAdapter] = ()):
        self._providers: dict[ProviderTag, ProviderAdapter] = {}
        self._active: dict[str, CancellationToken] = {}
        for adapter in adapters:
            self.register_provider(adapter)

    # ------------------------------------------------------------------
    # Provider registry
    # ------------------------------------------------------------------

    def register_provider(self, adapter: ProviderAdapter) -> None:
        tag = ProviderTag(adapter.name)
        if tag in self._providers:
            logger.info("Replacing registered adapter for %s", tag.value)
        self._providers[tag] = adapter

    def get_provider(self, provider: ProviderTag | str) -> ProviderAdapter | None:
        try:
            return self._providers.get(ProviderTag(provider))
        except ValueError:
            return None

    def has_provider(self, provider: ProviderTag | str) -> bool:
        return self.get_provider(provider) is not None

    def get_registered_providers(self) -> list[ProviderTag]:
        return list(self._providers)

    def _require_provider(self, provider: Any) -> ProviderAdapter:
        adapter = self.get_provider(provider)
        if adapter is None:
            raise provider_not_found(provider)
        return adapter

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    def create_request(
        self,
        prompt: str,
        config: ProviderConfig | Mapping[str, Any],
        request_id: str | None = None,
    ) -> ValidationResult[InferenceRequest]:
        """Validate ``config`` through its adapter and build an InferenceRequest.

        Nothing is registered here; the request becomes active only once it is
        streamed.
        """
        provider = config.provider if isinstance(config, ProviderConfig) else config.get("provider")
        adapter = self.get_provider(provider) if provider is not None else None
        if adapter is None:
            return _not_registered(provider)

        validation = adapter.validate_config(config)
        if not validation.success:
            logger.info("Rejected %s config: %s", adapter.name.value, validation.error.message)
            return ValidationResult.fail(INVALID_CONFIG, validation.error.message, validation.error)

        validated = validation.data
        request = InferenceRequest(
            id=request_id or generate_request_id(validated.provider),
            prompt=prompt,
            config=validated,
            timestamp=now_ms(),
        )
        return ValidationResult.ok(request)

    async def send_streaming_request(self, request: InferenceRequest) -> AsyncIterator[StreamChunk]:
        """Stream chunks for ``request`` until terminal, error or cancellation.

        Raises ProviderError before any chunk when the provider is unknown or
        the config no longer validates. Adapter errors propagate unchanged
        unless the request was already cancelled.
        """
        adapter = self._require_provider(request.provider)

        validation = adapter.validate_config(request.config)
        if not validation.success:
            raise ProviderError(
                NormalizedError(INVALID_CONFIG, validation.error.message, retryable=False, details=validation.error)
            )

        token = CancellationToken()
        self._active[request.id] = token
        provider = request.provider.value
        outcome = "cancelled"  # also covers a consumer abandoning the iterator
        started = time.monotonic()
        self._record(metrics.STREAMS_STARTED, provider)
        logger.debug("Request %s started (%d active)", request.id, len(self._active))

        try:
            async with aclosing(adapter.send_streaming_request(request)) as chunks:
                async for chunk in chunks:
                    if token.cancelled:
                        logger.info("Request %s cancelled", request.id)
                        yield StreamChunk(request_id=request.id, content="", is_complete=True)
                        return

                    self._record(metrics.CHUNKS_DELIVERED, provider)
                    if chunk.is_complete:
                        outcome = "complete"
                    yield chunk
                    if chunk.is_complete:
                        return

                # Adapter stream ran dry without a terminal chunk
                outcome = "cancelled" if token.cancelled else "complete"
                yield StreamChunk(request_id=request.id, content="", is_complete=True)
        except Exception as e:
            if not token.cancelled:
                outcome = "error"
                raise
            # The read in flight at cancel time is discarded, even a failed one
            logger.info("Request %s cancelled; dropping late error: %s", request.id, e)
            yield StreamChunk(request_id=request.id, content="", is_complete=True)
        finally:
            self._active.pop(request.id, None)
            if settings.metrics_enabled:
                metrics.STREAMS_FINISHED.labels(provider=provider, outcome=outcome).inc()
                metrics.STREAM_DURATION.labels(provider=provider).observe(time.monotonic() - started)

    @staticmethod
    def _record(counter: Any, provider: str) -> None:
        if settings.metrics_enabled:
            counter.labels(provider=provider).inc()

    def cancel_request(self, request_id: str) -> bool:
        """Flag a request as cancelled. Returns False if it was not active."""
        token = self._active.pop(request_id, None)
        if token is None:
            return False
        token.cancel()
        logger.debug("Cancel requested for %s", request_id)
        return True

    def cancel_all_requests(self) -> int:
        ids = list(self._active)
        for request_id in ids:
            self.cancel_request(request_id)
        if ids:
            logger.info("Cancelled %d active requests", len(ids))
        return len(ids)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_active_request_count(self) -> int:
        return len(self._active)

    def get_active_request_ids(self) -> list[str]:
        return list(self._active)

    def get_provider_stats(self) -> dict[str, dict[str, Any]]:
        """Per registered provider: whether it is registered and its active count."""
        stats: dict[str, dict[str, Any]] = {}
        for tag in self._providers:
            prefix = f"{tag.value}_"
            stats[tag.value] = {
                "registered": True,
                "active_requests": sum(1 for request_id in self._active if request_id.startswith(prefix)),
            }
        return stats

    # ------------------------------------------------------------------
    # Provider passthroughs
    # ------------------------------------------------------------------

    def validate_config(
        self, provider: ProviderTag | str, config: ProviderConfig | Mapping[str, Any]
    ) -> ValidationResult[ProviderConfig]:
        adapter = self.get_provider(provider)
        if adapter is None:
            return _not_registered(provider)
        return adapter.validate_config(config)

    async def get_available_models(
        self, provider: ProviderTag | str, api_key: str, base_url: str | None = None
    ) -> AvailableModelsResult:
        return await self._require_provider(provider).get_available_models(api_key, base_url)

    def clear_model_cache(self, provider: ProviderTag | str) -> None:
        self._require_provider(provider).clear_model_cache()

    def clear_all_model_caches(self) -> None:
        for adapter in self._providers.values():
            adapter.clear_model_cache()

    def dispose(self) -> None:
        self.cancel_all_requests()
        self._providers.clear()
