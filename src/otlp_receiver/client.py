"""HTTP clients for exporting to and querying an otlp-receiver."""

from typing import Any

import httpx

from otlp_receiver.models import NormalizedSpan, TelemetryStats


class TelemetryClient:
    """Synchronous client for the otlp-receiver REST API.

    Exporters use :meth:`export_traces`; dashboards use the query methods.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- Export ------------------------------------------------------------

    def export_traces(self, payload: dict[str, Any]) -> bool:
        """POST an OTLP/JSON ``ExportTraceServiceRequest``."""
        resp = self._http.post(f"{self.base_url}/v1/traces", json=payload)
        resp.raise_for_status()
        return resp.json().get("success", False)

    def export_metrics(self, payload: dict[str, Any]) -> bool:
        resp = self._http.post(f"{self.base_url}/v1/metrics", json=payload)
        resp.raise_for_status()
        return resp.json().get("success", False)

    # -- Queries -----------------------------------------------------------

    def get_spans(self) -> tuple[int, list[NormalizedSpan]]:
        """Return ``(total held, most recent page of spans)``."""
        resp = self._http.get(f"{self.base_url}/telemetry/spans")
        resp.raise_for_status()
        data = resp.json()
        return data["total"], [NormalizedSpan(**s) for s in data["spans"]]

    def get_recent_spans(self, limit: int = 50) -> list[NormalizedSpan]:
        resp = self._http.get(f"{self.base_url}/telemetry/spans/recent", params={"limit": limit})
        resp.raise_for_status()
        return [NormalizedSpan(**s) for s in resp.json()]

    def get_service_spans(self, service_name: str) -> list[NormalizedSpan]:
        resp = self._http.get(f"{self.base_url}/telemetry/spans/by-service", params={"name": service_name})
        resp.raise_for_status()
        return [NormalizedSpan(**s) for s in resp.json()]

    def get_operation_spans(self, operation_name: str) -> list[NormalizedSpan]:
        resp = self._http.get(f"{self.base_url}/telemetry/spans/by-operation", params={"name": operation_name})
        resp.raise_for_status()
        return [NormalizedSpan(**s) for s in resp.json()]

    def get_stats(self) -> TelemetryStats:
        resp = self._http.get(f"{self.base_url}/telemetry/stats")
        resp.raise_for_status()
        return TelemetryStats(**resp.json())

    # -- Lifecycle ---------------------------------------------------------

    def clear(self) -> bool:
        resp = self._http.delete(f"{self.base_url}/telemetry/clear")
        resp.raise_for_status()
        return resp.json().get("success", False)

    def health(self) -> dict[str, Any]:
        resp = self._http.get(f"{self.base_url}/health")
        resp.raise_for_status()
        return resp.json()


class AsyncTelemetryClient:
    """Async variant of :class:`TelemetryClient` using ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # -- Export ------------------------------------------------------------

    async def export_traces(self, payload: dict[str, Any]) -> bool:
        resp = await self._http.post(f"{self.base_url}/v1/traces", json=payload)
        resp.raise_for_status()
        return resp.json().get("success", False)

    async def export_metrics(self, payload: dict[str, Any]) -> bool:
        resp = await self._http.post(f"{self.base_url}/v1/metrics", json=payload)
        resp.raise_for_status()
        return resp.json().get("success", False)

    # -- Queries -----------------------------------------------------------

    async def get_spans(self) -> tuple[int, list[NormalizedSpan]]:
        resp = await self._http.get(f"{self.base_url}/telemetry/spans")
        resp.raise_for_status()
        data = resp.json()
        return data["total"], [NormalizedSpan(**s) for s in data["spans"]]

    async def get_recent_spans(self, limit: int = 50) -> list[NormalizedSpan]:
        resp = await self._http.get(f"{self.base_url}/telemetry/spans/recent", params={"limit": limit})
        resp.raise_for_status()
        return [NormalizedSpan(**s) for s in resp.json()]

    async def get_service_spans(self, service_name: str) -> list[NormalizedSpan]:
        resp = await self._http.get(f"{self.base_url}/telemetry/spans/by-service", params={"name": service_name})
        resp.raise_for_status()
        return [NormalizedSpan(**s) for s in resp.json()]

    async def get_operation_spans(self, operation_name: str) -> list[NormalizedSpan]:
        resp = await self._http.get(f"{self.base_url}/telemetry/spans/by-operation", params={"name": operation_name})
        resp.raise_for_status()
        return [NormalizedSpan(**s) for s in resp.json()]

    async def get_stats(self) -> TelemetryStats:
        resp = await self._http.get(f"{self.base_url}/telemetry/stats")
        resp.raise_for_status()
        return TelemetryStats(**resp.json())

    # -- Lifecycle ---------------------------------------------------------

    async def clear(self) -> bool:
        resp = await self._http.delete(f"{self.base_url}/telemetry/clear")
        resp.raise_for_status()
        return resp.json().get("success", False)

    async def health(self) -> dict[str, Any]:
        resp = await self._http.get(f"{self.base_url}/health")
        resp.raise_for_status()
        return resp.json()
