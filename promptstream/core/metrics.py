"""Prometheus metrics for streaming requests."""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, Info, generate_latest

from promptstream.core.config import __version__

# --- Metrics ---

APP_INFO = Info("promptstream", "promptstream client info")
APP_INFO.info({"version": __version__, "name": "promptstream"})

STREAMS_STARTED = Counter(
    "promptstream_streams_started_total",
    "Streaming requests admitted and sent to a vendor",
    ["provider"],
)

STREAMS_FINISHED = Counter(
    "promptstream_streams_finished_total",
    "Streaming requests that reached a terminal state",
    ["provider", "outcome"],  # outcome: complete | cancelled | error
)

CHUNKS_DELIVERED = Counter(
    "promptstream_chunks_delivered_total",
    "Normalized chunks handed to the caller",
    ["provider"],
)

RATE_LIMIT_BACKOFFS = Counter(
    "promptstream_rate_limit_backoffs_total",
    "Backoff windows entered after a vendor throttling signal",
    ["provider"],
)

STREAM_DURATION = Histogram(
    "promptstream_stream_duration_seconds",
    "Wall-clock duration of a streaming request",
    ["provider"],
    buckets=[0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60],
)


def metrics_text() -> tuple[bytes, str]:
    """Return the Prometheus exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
