"""otlp-receiver: OTLP/HTTP trace receiver with a bounded in-memory span history."""

from otlp_receiver._version import __version__
from otlp_receiver.client import AsyncTelemetryClient, TelemetryClient
from otlp_receiver.models import (
    NormalizedSpan,
    ReceiverConfig,
    SpanEvent,
    SpanStatus,
    TelemetryStats,
)
from otlp_receiver.otlp import OTLPDecodeError, decode_traces
from otlp_receiver.processor import TraceProcessor
from otlp_receiver.server import create_app
from otlp_receiver.store.memory_store import MemorySpanStore

__all__ = [
    "__version__",
    "create_app",
    "decode_traces",
    "TelemetryClient",
    "AsyncTelemetryClient",
    "MemorySpanStore",
    "NormalizedSpan",
    "OTLPDecodeError",
    "ReceiverConfig",
    "SpanEvent",
    "SpanStatus",
    "TelemetryStats",
    "TraceProcessor",
]
