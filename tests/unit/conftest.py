"""Shared fixtures for otlp-receiver tests."""

from typing import Any

import pytest
from fastapi import FastAPI
from otlp_receiver import ReceiverConfig, create_app
from otlp_receiver.models import NormalizedSpan
from otlp_receiver.otlp import millis_to_iso
from otlp_receiver.store.memory_store import MemorySpanStore

# ------------------------------------------------------------------
# Canned OTLP/JSON export, shaped like the JS SDK's JSON exporter output
# ------------------------------------------------------------------


def _kv(key: str, value: dict[str, Any]) -> dict[str, Any]:
    return {"key": key, "value": value}


def build_export(*services: tuple[str | None, list[list[dict[str, Any]]]]) -> dict[str, Any]:
    """Build an ``ExportTraceServiceRequest``.

    Each service is ``(service_name, [scope_spans, ...])`` where every
    scope entry is a list of raw spans.
    """
    resource_spans = []
    for service_name, scopes in services:
        attributes = [_kv("telemetry.sdk.language", {"stringValue": "javascript"})]
        if service_name is not None:
            attributes.insert(0, _kv("service.name", {"stringValue": service_name}))
        resource_spans.append(
            {
                "resource": {"attributes": attributes},
                "scopeSpans": [{"scope": {"name": "test-scope", "version": "1.0.0"}, "spans": spans} for spans in scopes],
            }
        )
    return {"resourceSpans": resource_spans}


def raw_span(name: str, start_ns: int | str = 1_700_000_000_000_000_000, duration_ns: int = 25_000_000, **extra: Any) -> dict[str, Any]:
    start = int(start_ns)
    span: dict[str, Any] = {
        "traceId": "5b8efff798038103d269b633813fc60c",
        "spanId": "eee19b7ec3c1b174",
        "name": name,
        "kind": 1,
        "startTimeUnixNano": str(start_ns),
        "endTimeUnixNano": str(start + duration_ns),
        "attributes": [],
        "events": [],
        "status": {"code": 1},
    }
    span.update(extra)
    return span


def make_span(
    operation_name: str = "GET /api",
    service_name: str = "mobile-app",
    status: str = "OK",
    start_time: int = 1_700_000_000_000,
    span_id: str = "eee19b7ec3c1b174",
) -> NormalizedSpan:
    return NormalizedSpan(
        trace_id="5b8efff798038103d269b633813fc60c",
        span_id=span_id,
        operation_name=operation_name,
        start_time=start_time,
        end_time=start_time + 10,
        duration=10,
        status=status,
        service_name=service_name,
        timestamp=millis_to_iso(start_time),
    )


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture
def memory_store():
    return MemorySpanStore()


@pytest.fixture
def receiver_config() -> ReceiverConfig:
    return ReceiverConfig(port=0, max_spans=100)


@pytest.fixture
def receiver_app(receiver_config: ReceiverConfig) -> FastAPI:
    """Create a receiver FastAPI app (not running; use httpx ASGITransport)."""
    return create_app(receiver_config)
