"""Ingest path: decode OTLP payloads and feed the span store."""

import logging
from typing import Any

from otlp_receiver.otlp import decode_traces
from otlp_receiver.store.base import SpanStore

logger = logging.getLogger(__name__)


class TraceProcessor:
    """Thin wrapper around ``SpanStore`` for the OTLP export endpoints."""

    def __init__(self, store: SpanStore) -> None:
        self.store = store

    def process_traces(self, payload: Any) -> int:
        """Decode *payload* and append each span.  Returns the count stored.

        A payload that fails part-way through still has its leading spans
        appended (no rollback); the decode error is then re-raised.
        """
        logger.info(
            "Processing OTLP traces data (type=%s, keys=%s)",
            type(payload).__name__,
            list(payload.keys()) if isinstance(payload, dict) else [],
        )
        result = decode_traces(payload)
        if not result.has_resource_spans:
            logger.warning("No resourceSpans found in traces data")
            return 0

        for span in result.spans:
            self.store.append(span)
            logger.debug(
                "Processed span trace_id=%s span_id=%s operation=%s service=%s duration=%dms status=%s",
                span.trace_id,
                span.span_id,
                span.operation_name,
                span.service_name,
                span.duration,
                span.status,
            )

        if result.error is not None:
            logger.error("Error processing traces after %d span(s): %s", len(result.spans), result.error)
            raise result.error

        logger.info("Stored %d span(s); store now holds %d", len(result.spans), self.store.count())
        return len(result.spans)

    def process_metrics(self, payload: Any) -> None:
        """Metrics are not decoded; the payload is only logged."""
        logger.info("Received metrics data (%d resourceMetrics)", len(_resource_metrics(payload)))
        logger.debug("Metrics payload: %s", payload)


def _resource_metrics(payload: Any) -> list[Any]:
    if isinstance(payload, dict) and isinstance(payload.get("resourceMetrics"), list):
        return payload["resourceMetrics"]
    return []
