"""OTLP/JSON trace decoding.

Turns an ``ExportTraceServiceRequest`` JSON body into flat
:class:`NormalizedSpan` records.  Operates on plain dicts/lists as produced by
``json.loads``; nothing here touches the store.

Wire conventions handled:

- identifiers arrive either as hex strings or as raw byte sequences
- timestamps are nanoseconds, as integers or decimal strings
- attribute values are an ``AnyValue`` union keyed by the populated member
- ``status.code`` is numeric (0 unset, 1 ok, 2 error)
"""

import json
import logging
import math
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from otlp_receiver.models import (
    AttributeKind,
    AttributeValue,
    NormalizedSpan,
    SpanEvent,
    SpanStatus,
)

logger = logging.getLogger(__name__)

UNKNOWN_SERVICE = "unknown-service"
UNKNOWN_OPERATION = "unknown-operation"
UNKNOWN_EVENT = "unknown-event"

_NANOS_PER_MILLI = 1_000_000
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

_STATUS_CODES = {
    0: SpanStatus.UNSET,
    1: SpanStatus.OK,
    2: SpanStatus.ERROR,
}


class OTLPDecodeError(ValueError):
    """Raised when a traces payload cannot be traversed."""


@dataclass
class DecodeResult:
    """Outcome of :func:`decode_traces`.

    ``spans`` holds everything decoded before ``error`` (if any) was hit, so
    the caller can keep the prefix of a partially bad payload.
    """

    spans: list[NormalizedSpan] = field(default_factory=list)
    error: OTLPDecodeError | None = None
    has_resource_spans: bool = True

    @property
    def ok(self) -> bool:
        return self.error is None


# ------------------------------------------------------------------
# Scalar helpers
# ------------------------------------------------------------------


def bytes_to_hex(value: Any) -> str:
    """Render an OTLP identifier as lowercase hex.

    Strings are assumed to be hex already and pass through untouched.
    """
    if isinstance(value, str):
        return value
    if not value:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return value.hex()
    if isinstance(value, (list, tuple)):
        try:
            return bytes(value).hex()
        except (TypeError, ValueError) as exc:
            raise OTLPDecodeError(f"Invalid byte sequence in identifier: {value!r}") from exc
    raise OTLPDecodeError(f"Unsupported identifier type: {type(value).__name__}")


def nanos_to_millis(value: Any) -> int:
    """Convert a nanosecond timestamp (int or decimal string) to milliseconds."""
    if isinstance(value, bool):
        raise OTLPDecodeError(f"Invalid nanosecond timestamp: {value!r}")
    if isinstance(value, int):
        return value // _NANOS_PER_MILLI
    if isinstance(value, float) and math.isfinite(value):
        return math.floor(value / _NANOS_PER_MILLI)
    if isinstance(value, str):
        m = _LEADING_INT_RE.match(value)
        if m:
            return int(m.group(1)) // _NANOS_PER_MILLI
    raise OTLPDecodeError(f"Invalid nanosecond timestamp: {value!r}")


def millis_to_iso(millis: int) -> str:
    """Format epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    try:
        dt = datetime.fromtimestamp(millis // 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise OTLPDecodeError(f"Timestamp out of range: {millis}ms") from exc
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{millis % 1000:03d}Z"


def decode_status(status: Any) -> SpanStatus:
    if status is None:
        return SpanStatus.OK
    code = status.get("code") if isinstance(status, dict) else None
    if isinstance(code, bool) or not isinstance(code, (int, float)):
        return SpanStatus.UNKNOWN
    if isinstance(code, float):
        if not code.is_integer():
            return SpanStatus.UNKNOWN
        code = int(code)
    return _STATUS_CODES.get(code, SpanStatus.UNKNOWN)


def _parse_int(raw: Any) -> int | float:
    """Leading-integer parse of an ``intValue``; ``nan`` when nothing parses."""
    if isinstance(raw, bool):
        return math.nan
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else math.nan
    m = _LEADING_INT_RE.match(str(raw))
    if m is None:
        return math.nan
    return int(m.group(1))


def decode_any_value(value: dict[str, Any]) -> AttributeValue:
    """Decode an OTLP ``AnyValue`` by first populated member.

    Precedence is string, int, double, bool.  Anything else (arrays, kvlists,
    bytes, empty objects) is kept as its compact JSON text.
    """
    if "stringValue" in value:
        return AttributeValue(AttributeKind.STRING, value["stringValue"])
    if "intValue" in value:
        return AttributeValue(AttributeKind.INT, _parse_int(value["intValue"]))
    if "doubleValue" in value:
        return AttributeValue(AttributeKind.DOUBLE, value["doubleValue"])
    if "boolValue" in value:
        return AttributeValue(AttributeKind.BOOL, value["boolValue"])
    return AttributeValue(AttributeKind.OPAQUE, json.dumps(value, separators=(",", ":")))


def decode_attributes(attributes: Any) -> dict[str, Any]:
    """Flatten an OTLP ``KeyValue`` list into a dict (last duplicate wins)."""
    if not attributes:
        return {}
    result: dict[str, Any] = {}
    for attr in attributes:
        key = attr.get("key")
        if not key:
            continue
        value = attr.get("value")
        if value is None or (not value and not isinstance(value, dict)):
            continue
        if isinstance(value, dict):
            result[key] = decode_any_value(value).value
        else:
            result[key] = json.dumps(value, separators=(",", ":"))
    return result


def decode_events(events: Any) -> list[SpanEvent]:
    if not events:
        return []
    return [
        SpanEvent(
            name=event.get("name") or UNKNOWN_EVENT,
            timestamp=nanos_to_millis(event.get("timeUnixNano")),
            attributes=decode_attributes(event.get("attributes")),
        )
        for event in events
    ]


def extract_service_name(resource: Any) -> str:
    """Return the ``service.name`` resource attribute, first occurrence wins."""
    if not resource or not resource.get("attributes"):
        return UNKNOWN_SERVICE
    for attr in resource["attributes"]:
        if attr.get("key") == "service.name":
            value_obj = attr.get("value")
            value = value_obj.get("stringValue") if isinstance(value_obj, dict) else None
            if isinstance(value, str) and value:
                return value
            return UNKNOWN_SERVICE
    return UNKNOWN_SERVICE


# ------------------------------------------------------------------
# Span decoding
# ------------------------------------------------------------------


def decode_span(span: dict[str, Any], service_name: str) -> NormalizedSpan:
    """Decode one raw OTLP span belonging to *service_name*."""
    start_ms = nanos_to_millis(span.get("startTimeUnixNano"))
    end_ms = nanos_to_millis(span.get("endTimeUnixNano"))
    parent = span.get("parentSpanId")

    return NormalizedSpan(
        trace_id=bytes_to_hex(span.get("traceId")),
        span_id=bytes_to_hex(span.get("spanId")),
        parent_span_id=bytes_to_hex(parent) if parent else None,
        operation_name=span.get("name") or UNKNOWN_OPERATION,
        start_time=start_ms,
        end_time=end_ms,
        duration=end_ms - start_ms,
        status=decode_status(span.get("status")),
        attributes=decode_attributes(span.get("attributes")),
        events=decode_events(span.get("events")),
        service_name=service_name,
        timestamp=millis_to_iso(start_ms),
    )


def has_resource_spans(payload: Any) -> bool:
    return isinstance(payload, dict) and isinstance(payload.get("resourceSpans"), list)


def iter_spans(payload: Any) -> Iterator[NormalizedSpan]:
    """Yield spans in resource → scope → span order.

    Raises :class:`OTLPDecodeError` at the first span (or enclosing group)
    that cannot be traversed; spans yielded before that point are valid.
    """
    if not has_resource_spans(payload):
        return

    try:
        for resource_span in payload["resourceSpans"]:
            service_name = extract_service_name(resource_span.get("resource"))

            scope_spans = resource_span.get("scopeSpans")
            if not scope_spans:
                logger.warning("No scopeSpans found in resourceSpan (service=%s)", service_name)
                continue

            for scope_span in scope_spans:
                spans = scope_span.get("spans")
                if not spans:
                    logger.warning("No spans found in scopeSpan (service=%s)", service_name)
                    continue

                for span in spans:
                    yield decode_span(span, service_name)
    except OTLPDecodeError:
        raise
    except (AttributeError, TypeError, KeyError, ValueError) as exc:
        raise OTLPDecodeError(f"Malformed traces payload: {exc}") from exc


def decode_traces(payload: Any) -> DecodeResult:
    """Decode a whole traces payload into a :class:`DecodeResult`."""
    result = DecodeResult(has_resource_spans=has_resource_spans(payload))
    try:
        for span in iter_spans(payload):
            result.spans.append(span)
    except OTLPDecodeError as exc:
        result.error = exc
    return result
