"""Model list cache — TTL cache in front of each vendor's models endpoint.

Keyed by (provider, credential suffix, base URL). A failed refresh serves the
stale entry when one exists and falls back to the static list only when the
cache has nothing for that key.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from promptstream.core.config import settings
from promptstream.gateway.errors import ProviderError
from promptstream.gateway.types import AvailableModelsResult, ModelInfo, now_ms

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    models: list[ModelInfo]
    timestamp: int  # epoch ms


class ModelCache:
    """Per-adapter cache of fetched model lists."""

    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], int] = now_ms):
        ttl = settings.model_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.ttl_ms = int(ttl * 1000)
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}

    @staticmethod
    def make_key(provider: str, api_key: str, base_url: str | None) -> str:
        return f"{provider}_{api_key[-8:]}_{base_url or 'default'}"

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[list[ModelInfo]]],
        fallback: Callable[[], list[ModelInfo]],
    ) -> AvailableModelsResult:
        cached = self._entries.get(key)
        now = self._clock()

        if cached is not None and now - cached.timestamp < self.ttl_ms:
            return AvailableModelsResult(models=cached.models, cached=True, timestamp=cached.timestamp)

        try:
            models = await fetch()
        except (ProviderError, ValueError, KeyError, TypeError) as e:
            if cached is not None:
                logger.warning("Model refresh failed for %s, serving cached list: %s", key.split("_", 1)[0], e)
                return AvailableModelsResult(models=cached.models, cached=True, timestamp=cached.timestamp)

            logger.warning("Model fetch failed for %s, using fallback list: %s", key.split("_", 1)[0], e)
            return AvailableModelsResult(models=fallback(), cached=False, timestamp=self._clock())

        fetched_at = self._clock()
        self._entries[key] = _CacheEntry(models=models, timestamp=fetched_at)
        return AvailableModelsResult(models=models, cached=False, timestamp=fetched_at)
