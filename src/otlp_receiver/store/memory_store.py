"""In-memory bounded span store."""

import threading
from collections import Counter, deque
from itertools import islice

from otlp_receiver.models import (
    NormalizedSpan,
    OperationCount,
    TelemetryStats,
    TimeRange,
)

DEFAULT_MAX_SPANS = 10_000
TOP_OPERATIONS = 10


class MemorySpanStore:
    """Ring buffer of the most recent spans.

    A single lock covers appends, clears and every read: eviction and the
    stats pass both walk the whole buffer.
    """

    def __init__(self, max_spans: int = DEFAULT_MAX_SPANS) -> None:
        if max_spans < 0:
            raise ValueError(f"max_spans must be >= 0, got {max_spans}")
        self.max_spans = max_spans
        # deque(maxlen=...) drops from the left on overflow: strict FIFO.
        self._spans: deque[NormalizedSpan] = deque(maxlen=max_spans)
        self._lock = threading.Lock()

    def append(self, span: NormalizedSpan) -> None:
        with self._lock:
            self._spans.append(span)

    def list_all(self) -> list[NormalizedSpan]:
        with self._lock:
            return list(reversed(self._spans))

    def list_recent(self, limit: int = 50) -> list[NormalizedSpan]:
        if limit <= 0:
            return []
        with self._lock:
            return list(islice(reversed(self._spans), limit))

    def list_by_service(self, service_name: str) -> list[NormalizedSpan]:
        with self._lock:
            return [s for s in self._spans if s.service_name == service_name]

    def list_by_operation(self, operation_name: str) -> list[NormalizedSpan]:
        with self._lock:
            return [s for s in self._spans if s.operation_name == operation_name]

    def count(self) -> int:
        with self._lock:
            return len(self._spans)

    def __len__(self) -> int:
        return self.count()

    def stats(self) -> TelemetryStats:
        with self._lock:
            if not self._spans:
                return TelemetryStats()

            services: set[str] = set()
            operations: Counter[str] = Counter()
            earliest: str | None = None
            latest: str | None = None
            error_count = 0

            for span in self._spans:
                services.add(span.service_name)
                operations[span.operation_name] += 1
                if span.is_error:
                    error_count += 1
                ts = span.timestamp
                if earliest is None or ts < earliest:
                    earliest = ts
                if latest is None or ts > latest:
                    latest = ts

            total = len(self._spans)

        # Counter keeps first-seen order and sorted() is stable, so equal
        # counts stay in the order the operations were first encountered.
        top = sorted(operations.items(), key=lambda item: item[1], reverse=True)[:TOP_OPERATIONS]

        return TelemetryStats(
            total_spans=total,
            unique_services=len(services),
            unique_operations=len(operations),
            time_range=TimeRange(earliest=earliest or None, latest=latest or None),
            top_operations=[OperationCount(name=name, count=count) for name, count in top],
            error_count=error_count,
            success_count=total - error_count,
        )

    def clear(self) -> None:
        with self._lock:
            self._spans.clear()
