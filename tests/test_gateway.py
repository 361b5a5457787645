"""Tests for the streaming gateway orchestrator and the response normalizer.

Covers:
  - Admission through the per-vendor limiter
  - Limiter feedback on success and HTTP 429
  - Cancellation through the gateway
  - collect() aggregation and error state
  - Lifecycle (context manager, client ownership)
"""

from __future__ import annotations

import httpx
import pytest

from promptstream.gateway.errors import INVALID_CONFIG, RATE_LIMIT_TIMEOUT, ProviderError
from promptstream.gateway.gateway import StreamingGateway
from promptstream.gateway.normalizer import accumulate_chunks, apply_chunk, error_response, start_response
from promptstream.gateway.types import (
    InferenceRequest,
    NormalizedError,
    ProviderConfig,
    ProviderTag,
    StreamChunk,
    default_config,
)

SSE_HEADERS = {"content-type": "text/event-stream"}
OPENAI_KEY = "sk-test-openai-key-1234567890"

OPENAI_STREAM = (
    b'data: {"choices":[{"delta":{"content":"Hi"},"finish_reason":null}]}\n\n'
    b'data: {"choices":[{"delta":{"content":" there"},"finish_reason":null}]}\n\n'
    b'data: {"choices":[{"delta":{},"finish_reason":"stop"}],"usage":{"total_tokens":12}}\n\n'
)


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, headers=SSE_HEADERS, content=OPENAI_STREAM)


def _throttled(request: httpx.Request) -> httpx.Response:
    return httpx.Response(429, json={"error": {"message": "Too many requests"}})


def _config(api_key: str = OPENAI_KEY, **overrides) -> dict:
    return default_config(ProviderTag.OPENAI, api_key, **overrides)


# ==========================================================================
# Streaming through the gateway
# ==========================================================================


class TestGatewayStreaming:
    @pytest.mark.asyncio
    async def test_stream_success(self, make_client, clock):
        gateway = StreamingGateway(client=make_client(_ok), clock=clock)

        chunks = [chunk async for chunk in gateway.stream("Hello", _config())]

        assert [c.content for c in chunks] == ["Hi", " there", ""]
        assert chunks[-1].is_complete
        stats = gateway.limiters.get_limiter("openai").get_stats()
        assert stats["request_count"] == 1
        assert stats["active_requests"] == 0
        assert gateway.manager.get_active_request_count() == 0

    @pytest.mark.asyncio
    async def test_rate_limit_enters_backoff(self, make_client, clock):
        gateway = StreamingGateway(client=make_client(_throttled), clock=clock)

        with pytest.raises(ProviderError) as exc_info:
            async for _ in gateway.stream("Hello", _config()):
                pass

        assert exc_info.value.code == "OPENAI_HTTP_429"
        stats = gateway.limiters.get_limiter("openai").get_stats()
        assert stats["is_in_backoff"]
        assert stats["backoff_remaining_ms"] == 1000
        assert stats["active_requests"] == 0

    @pytest.mark.asyncio
    async def test_retry_after_header_sets_backoff(self, make_client, clock):
        def handler(request):
            return httpx.Response(429, headers={"retry-after": "7"}, json={"error": {"message": "slow down"}})

        gateway = StreamingGateway(client=make_client(handler), clock=clock)

        with pytest.raises(ProviderError):
            async for _ in gateway.stream("Hello", _config()):
                pass

        assert gateway.limiters.get_limiter("openai").get_stats()["backoff_remaining_ms"] == 7000

    @pytest.mark.asyncio
    async def test_admission_timeout(self, make_client, captured, clock):
        gateway = StreamingGateway(
            client=make_client(_ok),
            rate_limits={"openai": {"max_concurrent_requests": 0}},
            availability_timeout_seconds=0,
            clock=clock,
        )

        with pytest.raises(ProviderError) as exc_info:
            async for _ in gateway.stream("Hello", _config()):
                pass

        assert exc_info.value.code == RATE_LIMIT_TIMEOUT
        assert exc_info.value.retryable
        assert captured == []

    @pytest.mark.asyncio
    async def test_refused_acquire_not_sent(self, make_client, captured, clock, monkeypatch):
        gateway = StreamingGateway(client=make_client(_ok), clock=clock)
        limiter = gateway.limiters.get_limiter("openai")
        monkeypatch.setattr(limiter, "acquire_request", lambda: False)

        with pytest.raises(ProviderError) as exc_info:
            async for _ in gateway.stream("Hello", _config()):
                pass

        assert exc_info.value.code == RATE_LIMIT_TIMEOUT
        assert captured == []
        assert limiter.get_stats()["request_count"] == 0
        assert limiter.get_stats()["active_requests"] == 0

    @pytest.mark.asyncio
    async def test_rpm_ceiling_enforced_across_streams(self, make_client, captured, clock):
        gateway = StreamingGateway(
            client=make_client(_ok),
            rate_limits={"openai": {"max_requests_per_minute": 2}},
            availability_timeout_seconds=0,
            clock=clock,
        )

        for _ in range(2):
            async for _ in gateway.stream("Hello", _config()):
                pass
        with pytest.raises(ProviderError) as exc_info:
            async for _ in gateway.stream("Hello", _config()):
                pass

        assert exc_info.value.code == RATE_LIMIT_TIMEOUT
        assert len(captured) == 2
        assert gateway.limiters.get_limiter("openai").get_stats()["request_count"] == 2

    @pytest.mark.asyncio
    async def test_invalid_config_rejected(self, make_client, captured):
        gateway = StreamingGateway(client=make_client(_ok))

        with pytest.raises(ProviderError) as exc_info:
            async for _ in gateway.stream("Hello", _config(api_key="bad")):
                pass

        assert exc_info.value.code == INVALID_CONFIG
        assert not exc_info.value.retryable
        assert captured == []

    @pytest.mark.asyncio
    async def test_cancel_through_gateway(self, make_client, clock):
        gateway = StreamingGateway(client=make_client(_ok), clock=clock)
        request = gateway.prepare("Hello", _config())

        stream = gateway.stream_request(request)
        first = await stream.__anext__()
        assert gateway.cancel(request.id)
        rest = [chunk async for chunk in stream]

        assert first.content == "Hi"
        assert [(c.content, c.is_complete) for c in rest] == [("", True)]
        assert gateway.limiters.get_limiter("openai").get_stats()["active_requests"] == 0

    @pytest.mark.asyncio
    async def test_status(self, make_client, clock):
        gateway = StreamingGateway(client=make_client(_ok), clock=clock)
        async for _ in gateway.stream("Hello", _config()):
            pass

        status = gateway.get_status()

        assert status["providers"] == ["openai", "anthropic", "gemini"]
        assert status["active_requests"] == 0
        assert status["provider_stats"]["openai"] == {"registered": True, "active_requests": 0}
        assert status["rate_limits"]["openai"]["request_count"] == 1


class TestGatewayCollect:
    @pytest.mark.asyncio
    async def test_collect_success(self, make_client):
        gateway = StreamingGateway(client=make_client(_ok))

        response = await gateway.collect("Hello", _config(), request_id="req-1")

        assert response.request_id == "req-1"
        assert response.content == "Hi there"
        assert response.is_complete
        assert not response.is_streaming
        assert response.error is None
        assert response.metadata.token_count == 12
        assert response.metadata.model == "gpt-5"

    @pytest.mark.asyncio
    async def test_collect_error_state(self, make_client):
        gateway = StreamingGateway(client=make_client(lambda request: httpx.Response(500, text="oops")))

        response = await gateway.collect("Hello", _config())

        assert not response.is_complete
        assert not response.is_streaming
        assert response.error.code == "OPENAI_HTTP_500"
        assert response.can_retry
        assert response.to_dict()["error"]["status_code"] == 500


class TestGatewayLifecycle:
    @pytest.mark.asyncio
    async def test_owned_client_closed(self):
        async with StreamingGateway() as gateway:
            client = gateway._client
            assert not client.is_closed
        assert client.is_closed
        assert gateway.manager.get_registered_providers() == []

    @pytest.mark.asyncio
    async def test_shared_client_left_open(self, make_client):
        client = make_client(_ok)
        async with StreamingGateway(client=client):
            pass
        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_aclose_twice(self, make_client):
        gateway = StreamingGateway(client=make_client(_ok))
        await gateway.aclose()
        await gateway.aclose()


# ==========================================================================
# Normalizer
# ==========================================================================


def _request() -> InferenceRequest:
    return InferenceRequest(
        id="openai_1_abc",
        prompt="Hello",
        config=ProviderConfig(**_config()),
        timestamp=1_000,
    )


class TestNormalizer:
    def test_accumulate(self):
        chunks = [
            StreamChunk("openai_1_abc", "Hel"),
            StreamChunk("openai_1_abc", "lo"),
            StreamChunk("openai_1_abc", "", is_complete=True, token_count=9),
        ]
        response = accumulate_chunks(_request(), chunks)

        assert response.content == "Hello"
        assert response.is_complete
        assert not response.is_streaming
        assert response.metadata.token_count == 9
        assert response.metadata.duration_ms is not None

    def test_streaming_until_complete(self):
        response = start_response(_request())
        apply_chunk(response, StreamChunk("openai_1_abc", "partial"))
        assert response.is_streaming
        assert not response.is_complete

    def test_chunks_after_completion_ignored(self):
        response = accumulate_chunks(
            _request(),
            [StreamChunk("openai_1_abc", "done", is_complete=True), StreamChunk("openai_1_abc", "extra")],
        )
        assert response.content == "done"

    def test_error_response_keeps_partial(self):
        partial = start_response(_request())
        apply_chunk(partial, StreamChunk("openai_1_abc", "half"))

        response = error_response(
            _request(), NormalizedError("NETWORK_ERROR", "reset", retryable=True), partial=partial
        )

        assert response.content == "half"
        assert response.error.code == "NETWORK_ERROR"
        assert not response.is_streaming
        assert response.can_retry

    def test_to_dict(self):
        data = accumulate_chunks(_request(), [StreamChunk("openai_1_abc", "x", is_complete=True)]).to_dict()
        assert data["metadata"]["provider"] == "openai"
        assert data["metadata"]["model"] == "gpt-5"
        assert data["error"] is None
