"""Pydantic data models for the otlp-receiver."""

import math
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

DEFAULT_CORS_ORIGINS = [
    "http://localhost:8081",
    "http://10.0.2.2:8081",
    "exp://127.0.0.1:8081",
]


class SpanStatus(str, Enum):
    """Span status as decoded from the OTLP numeric ``status.code``."""

    UNSET = "UNSET"
    OK = "OK"
    ERROR = "ERROR"
    UNKNOWN = "UNKNOWN"


class AttributeKind(str, Enum):
    STRING = "string"
    INT = "int"
    DOUBLE = "double"
    BOOL = "bool"
    OPAQUE = "opaque"


class AttributeValue(NamedTuple):
    """One decoded ``AnyValue``: which union member matched, and its value."""

    kind: AttributeKind
    value: Any


class _CamelModel(BaseModel):
    # Python side uses snake_case; the JSON API speaks OTLP-style camelCase.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _nan_to_none(attributes: dict[str, Any]) -> dict[str, Any]:
    return {k: None if isinstance(v, float) and math.isnan(v) else v for k, v in attributes.items()}


class SpanEvent(_CamelModel):
    name: str = "unknown-event"
    timestamp: int
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_serializer("attributes")
    def serialize_attributes(self, attributes: dict[str, Any]) -> dict[str, Any]:
        return _nan_to_none(attributes)


class NormalizedSpan(_CamelModel):
    """A single span flattened out of its resource/scope nesting."""

    trace_id: str
    span_id: str
    parent_span_id: str | None = None
    operation_name: str = "unknown-operation"
    start_time: int
    end_time: int
    # endTime - startTime, negative when the exporter sent inverted timestamps
    duration: int
    status: SpanStatus | str = SpanStatus.OK
    attributes: dict[str, Any] = Field(default_factory=dict)
    events: list[SpanEvent] = Field(default_factory=list)
    service_name: str = "unknown-service"
    timestamp: str

    @field_serializer("attributes")
    def serialize_attributes(self, attributes: dict[str, Any]) -> dict[str, Any]:
        return _nan_to_none(attributes)

    @property
    def is_error(self) -> bool:
        status = self.status.value if isinstance(self.status, SpanStatus) else str(self.status)
        return status.upper() == SpanStatus.ERROR.value


class OperationCount(_CamelModel):
    name: str
    count: int


class TimeRange(_CamelModel):
    earliest: str | None = None
    latest: str | None = None


class TelemetryStats(_CamelModel):
    """Aggregate snapshot over the spans currently held by a store."""

    total_spans: int = 0
    unique_services: int = 0
    unique_operations: int = 0
    time_range: TimeRange = Field(default_factory=TimeRange)
    top_operations: list[OperationCount] = Field(default_factory=list)
    error_count: int = 0
    success_count: int = 0


class ReceiverConfig(BaseModel):
    """Top-level receiver configuration."""

    host: str = "0.0.0.0"
    port: int = 4318
    max_spans: int = 10_000
    spans_page_limit: int = 100
    max_body_bytes: int = 10 * 1024 * 1024
    cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = "INFO"
    log_file: str | None = None
