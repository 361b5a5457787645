"""Error taxonomy for the streaming gateway.

Request-level failures surface as a single ``ProviderError`` carrying a
provider-neutral ``NormalizedError``. Frame-level failures never raise past
the stream processor.
"""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from promptstream.gateway.types import NormalizedError

# Error codes
VALIDATION_ERROR = "VALIDATION_ERROR"
INVALID_CONFIG = "INVALID_CONFIG"
INVALID_PROVIDER = "INVALID_PROVIDER"
INVALID_API_KEY = "INVALID_API_KEY"
UNSUPPORTED_MODEL = "UNSUPPORTED_MODEL"
INVALID_MAX_TOKENS = "INVALID_MAX_TOKENS"
NETWORK_ERROR = "NETWORK_ERROR"
TIMEOUT_ERROR = "TIMEOUT_ERROR"
PARSING_ERROR = "PARSING_ERROR"
PROVIDER_NOT_FOUND = "PROVIDER_NOT_FOUND"
NO_RESPONSE_BODY = "NO_RESPONSE_BODY"
RATE_LIMIT_TIMEOUT = "RATE_LIMIT_TIMEOUT"

_RETRYABLE_CLIENT_STATUSES = (408, 429)


class ProviderError(Exception):
    """Raised once per failed request; never after a chunk stream has completed."""

    def __init__(self, error: NormalizedError, retry_after_seconds: float | None = None):
        super().__init__(error.message)
        self.error = error
        self.retry_after_seconds = retry_after_seconds

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def retryable(self) -> bool:
        return self.error.retryable

    @property
    def status_code(self) -> int | None:
        return self.error.status_code

    @property
    def details(self) -> Any:
        return self.error.details

    @property
    def is_rate_limited(self) -> bool:
        return self.error.status_code == 429

    def __repr__(self) -> str:
        return f"ProviderError(code={self.code!r}, retryable={self.retryable}, message={str(self)!r})"


def is_retryable_status(status_code: int) -> bool:
    """5xx, 429 and 408 are worth retrying; every other status is final."""
    return status_code >= 500 or status_code in _RETRYABLE_CLIENT_STATUSES


def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header given as seconds or an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    return max(seconds, 0.0)


def network_error(exc: BaseException) -> ProviderError:
    message = str(exc) or "Unknown network error"
    return ProviderError(NormalizedError(NETWORK_ERROR, message, retryable=True, details=repr(exc)))


def timeout_error(timeout_seconds: float) -> ProviderError:
    return ProviderError(
        NormalizedError(
            TIMEOUT_ERROR,
            f"Request timed out after {int(timeout_seconds * 1000)}ms",
            retryable=True,
        )
    )


def parsing_error(exc: BaseException, data: Any = None) -> NormalizedError:
    message = str(exc) or "Failed to parse response"
    return NormalizedError(PARSING_ERROR, message, retryable=False, details={"data": data})


def provider_not_found(provider: Any) -> ProviderError:
    name = getattr(provider, "value", provider)
    return ProviderError(
        NormalizedError(PROVIDER_NOT_FOUND, f"Provider '{name}' is not registered", retryable=False)
    )


def no_response_body(vendor_label: str) -> ProviderError:
    return ProviderError(
        NormalizedError(NO_RESPONSE_BODY, f"No response body received from {vendor_label}", retryable=False)
    )
