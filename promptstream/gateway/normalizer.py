"""Response Normalizer — folds a chunk stream into an InferenceResponse.

Applies the final aggregation after the request manager finishes a stream:
  - Concatenates chunk content in arrival order
  - Keeps the last reported token count
  - Stamps duration from the request timestamp
  - Builds the non-streaming error state after a terminal failure
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from promptstream.gateway.types import (
    InferenceRequest,
    InferenceResponse,
    NormalizedError,
    ResponseMetadata,
    StreamChunk,
    now_ms,
)

logger = logging.getLogger(__name__)


def _metadata(request: InferenceRequest) -> ResponseMetadata:
    return ResponseMetadata(provider=request.provider, model=request.config.model, timestamp=request.timestamp)


def apply_chunk(response: InferenceResponse, chunk: StreamChunk) -> InferenceResponse:
    """Fold one chunk into a streaming response. Chunks after completion are ignored."""
    if response.is_complete:
        logger.debug("Ignoring chunk after completion for %s", response.request_id)
        return response

    response.content += chunk.content
    if chunk.token_count is not None:
        response.metadata.token_count = chunk.token_count
    if chunk.is_complete:
        response.is_complete = True
        response.is_streaming = False
        response.metadata.duration_ms = now_ms() - response.metadata.timestamp
    return response


def start_response(request: InferenceRequest) -> InferenceResponse:
    return InferenceResponse(request_id=request.id, metadata=_metadata(request), is_streaming=True)


def accumulate_chunks(request: InferenceRequest, chunks: Iterable[StreamChunk]) -> InferenceResponse:
    """Aggregate an already-collected chunk sequence."""
    response = start_response(request)
    for chunk in chunks:
        apply_chunk(response, chunk)
    return response


def error_response(
    request: InferenceRequest,
    error: NormalizedError,
    partial: InferenceResponse | None = None,
) -> InferenceResponse:
    """Non-streaming error state. Partial content already received is kept."""
    response = partial or start_response(request)
    response.error = error
    response.is_streaming = False
    response.is_complete = False
    response.metadata.duration_ms = now_ms() - response.metadata.timestamp
    return response
