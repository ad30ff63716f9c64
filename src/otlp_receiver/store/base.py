"""SpanStore protocol: the abstract interface for recent-span history."""

from typing import Protocol

from otlp_receiver.models import NormalizedSpan, TelemetryStats


class SpanStore(Protocol):
    """Bounded, insertion-ordered span history.

    Implementations are synchronous: ingestion decodes and appends a whole
    payload before the next one is handled, and reads never suspend.
    """

    max_spans: int

    def append(self, span: NormalizedSpan) -> None:
        """Add a span, evicting the oldest ones beyond ``max_spans``."""
        ...

    def list_all(self) -> list[NormalizedSpan]:
        """All held spans, most recently appended first."""
        ...

    def list_recent(self, limit: int = 50) -> list[NormalizedSpan]:
        """The ``limit`` most recently appended spans, newest first."""
        ...

    def list_by_service(self, service_name: str) -> list[NormalizedSpan]:
        """Spans whose ``service_name`` matches exactly, oldest first."""
        ...

    def list_by_operation(self, operation_name: str) -> list[NormalizedSpan]:
        """Spans whose ``operation_name`` matches exactly, oldest first."""
        ...

    def count(self) -> int:
        ...

    def stats(self) -> TelemetryStats:
        """Recompute aggregate statistics over the current contents."""
        ...

    def clear(self) -> None:
        """Drop every held span."""
        ...
