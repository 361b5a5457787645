from collections.abc import Callable

import httpx
import pytest

from promptstream.core.config import settings

# Override settings for tests
settings.request_timeout_seconds = 5.0
settings.availability_timeout_seconds = 1.0
settings.log_json = False


class FakeClock:
    """Manually advanced epoch-ms clock for limiter and cache tests."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def captured() -> list[httpx.Request]:
    return []


@pytest.fixture
def make_client(captured: list[httpx.Request]) -> Callable[..., httpx.AsyncClient]:
    """Build an AsyncClient whose transport replies with the given handler.

    The handler receives the request and returns an ``httpx.Response``; every
    request is also appended to ``captured``.
    """

    def factory(handler) -> httpx.AsyncClient:
        async def recording_handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            response = handler(request)
            if not isinstance(response, httpx.Response):
                response = await response
            return response

        return httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))

    return factory
