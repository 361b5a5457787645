"""Rate Limiter — per-vendor fixed-window admission with exponential backoff.

Each vendor gets one RateLimiter tracking:
  - requests started in the current one-minute window (wall-clock reset)
  - requests currently in flight
  - a backoff deadline set after an HTTP 429

Backoff grows as ``1000ms × multiplier^n`` (n = requests already started in
the window before the throttled one) and is capped at
``max_backoff_ms``; an explicit ``Retry-After`` from the vendor wins when given.

All counters are mutated in synchronous code only. Under a single event loop
no ``await`` ever sits between a check and its mutation, so no lock is needed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, replace
from typing import Any

from promptstream.core import metrics
from promptstream.core.config import settings
from promptstream.gateway.types import (
    PROVIDER_RATE_LIMITS,
    RateLimitConfig,
    RateLimiterState,
    now_ms,
)

logger = logging.getLogger(__name__)

BASE_DELAY_MS = 1000
WINDOW_MS = 60_000
MAX_POLL_MS = 1000
CONCURRENCY_POLL_MS = 100


class RateLimiter:
    """Admission control for one vendor.

    Usage:
        limiter = RateLimiter(RateLimitConfig(max_requests_per_minute=50))

        if await limiter.wait_for_availability(timeout_ms=30_000) and limiter.acquire_request():
            try:
                ...
                limiter.handle_successful_request()
            finally:
                limiter.release_request()
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        name: str = "default",
        clock: Callable[[], int] = now_ms,
    ):
        self.name = name
        self._config = config or RateLimitConfig()
        self._clock = clock
        self._state = RateLimiterState(last_reset_time=clock())

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def _reset_window_if_needed(self, now: int) -> None:
        if now - self._state.last_reset_time >= WINDOW_MS:
            self._state.request_count = 0
            self._state.last_reset_time = now

    def can_make_request(self) -> bool:
        """Non-blocking check; resets the window first when it has expired."""
        now = self._clock()
        self._reset_window_if_needed(now)

        if now < self._state.backoff_until:
            return False
        if self._state.request_count >= self._config.max_requests_per_minute:
            return False
        return self._state.active_requests < self._config.max_concurrent_requests

    def acquire_request(self) -> bool:
        """Admit one request if the limits allow it; no state change when refused."""
        if not self.can_make_request():
            return False
        self._state.request_count += 1
        self._state.active_requests += 1
        return True

    def release_request(self) -> None:
        self._state.active_requests = max(0, self._state.active_requests - 1)

    def calculate_wait_ms(self) -> int:
        """How long until admission could succeed, 0 when it can now."""
        now = self._clock()
        self._reset_window_if_needed(now)

        if now < self._state.backoff_until:
            return self._state.backoff_until - now
        if self._state.request_count >= self._config.max_requests_per_minute:
            return max(0, self._state.last_reset_time + WINDOW_MS - now)
        if self._state.active_requests >= self._config.max_concurrent_requests:
            return CONCURRENCY_POLL_MS
        return 0

    async def wait_for_availability(self, timeout_ms: int = 30_000) -> bool:
        """Poll until a request may start, or give up after ``timeout_ms``.

        Sleeps at most one second per iteration, so a concurrency slot freed by
        another task is noticed promptly.
        """
        start = self._clock()
        while not self.can_make_request():
            if self._clock() - start >= timeout_ms:
                logger.warning("[%s] Rate limiter wait timed out after %dms", self.name, timeout_ms)
                return False
            wait_ms = self.calculate_wait_ms() or CONCURRENCY_POLL_MS
            await asyncio.sleep(min(wait_ms, MAX_POLL_MS) / 1000)
        return True

    # ------------------------------------------------------------------
    # Backoff
    # ------------------------------------------------------------------

    def calculate_backoff_ms(self) -> int:
        """Exponential delay over the window's request count, capped.

        The throttled request itself is not counted, so the first 429 in a
        window backs off for exactly the base delay.
        """
        exponent = max(self._state.request_count - 1, 0)
        delay = BASE_DELAY_MS * self._config.backoff_multiplier**exponent
        return int(min(delay, self._config.max_backoff_ms))

    def handle_rate_limit_response(self, retry_after_seconds: float | None = None) -> int:
        """Enter backoff after an HTTP 429. Returns the backoff in ms."""
        if retry_after_seconds is not None:
            backoff_ms = int(retry_after_seconds * 1000)
        else:
            backoff_ms = self.calculate_backoff_ms()

        self._state.backoff_until = self._clock() + backoff_ms
        if settings.metrics_enabled:
            metrics.RATE_LIMIT_BACKOFFS.labels(provider=self.name).inc()
        logger.warning("[%s] Rate limited, backing off for %dms", self.name, backoff_ms)
        return backoff_ms

    def handle_successful_request(self) -> None:
        """Clear backoff once the vendor accepts traffic again."""
        self._state.backoff_until = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        now = self._clock()
        self._reset_window_if_needed(now)
        in_backoff = now < self._state.backoff_until
        return {
            "provider": self.name,
            "request_count": self._state.request_count,
            "active_requests": self._state.active_requests,
            "is_in_backoff": in_backoff,
            "backoff_remaining_ms": self._state.backoff_until - now if in_backoff else 0,
            "time_until_reset_ms": max(0, self._state.last_reset_time + WINDOW_MS - now),
            "can_make_request": self.can_make_request(),
        }

    def reset(self) -> None:
        self._state = RateLimiterState(last_reset_time=self._clock())

    def update_config(self, **overrides: Any) -> None:
        self._config = replace(self._config, **overrides)

    def get_config(self) -> RateLimitConfig:
        return replace(self._config)


class ProviderRateLimiters:
    """Lazily created RateLimiter per provider, seeded from vendor defaults."""

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock
        self._limiters: dict[str, RateLimiter] = {}

    def get_limiter(self, provider: str, **overrides: Any) -> RateLimiter:
        """Return the provider's limiter, creating it on first use.

        Overrides only apply when the limiter is created.
        """
        key = getattr(provider, "value", provider)
        limiter = self._limiters.get(key)
        if limiter is None:
            fields = {**asdict(RateLimitConfig()), **PROVIDER_RATE_LIMITS.get(key, {}), **overrides}
            limiter = RateLimiter(RateLimitConfig(**fields), name=key, clock=self._clock)
            self._limiters[key] = limiter
        return limiter

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: limiter.get_stats() for name, limiter in self._limiters.items()}

    def reset_all(self) -> None:
        for limiter in self._limiters.values():
            limiter.reset()

    def dispose(self) -> None:
        self._limiters.clear()
