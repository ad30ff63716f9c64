"""Integration tests for the receiver server (FastAPI app).

Uses httpx.AsyncClient with an ASGI transport against the app.
"""

import argparse
import json

import httpx
import pytest
import pytest_asyncio
from otlp_receiver import ReceiverConfig, create_app
from otlp_receiver.server import _load_config

from .conftest import build_export, raw_span

# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(receiver_app):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=receiver_app),
        base_url="http://testserver",
    ) as c:
        yield c


# ------------------------------------------------------------------
# Service endpoints
# ------------------------------------------------------------------


class TestService:
    @pytest.mark.asyncio
    async def test_root(self, client: httpx.AsyncClient):
        resp = await client.get("/")
        assert resp.status_code == 200
        data = resp.json()
        assert data["service"] == "OpenTelemetry Receiver"
        assert data["endpoints"]["traces"] == "/v1/traces"

    @pytest.mark.asyncio
    async def test_health(self, client: httpx.AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["totalSpans"] == 0
        assert data["timestamp"].endswith("Z")


# ------------------------------------------------------------------
# OTLP ingest
# ------------------------------------------------------------------


class TestIngest:
    @pytest.mark.asyncio
    async def test_traces_stored(self, client: httpx.AsyncClient):
        payload = build_export(("mobile-app", [[raw_span("GET /a"), raw_span("GET /b")]]))
        resp = await client.post("/v1/traces", json=payload)
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

        health = (await client.get("/health")).json()
        assert health["totalSpans"] == 2

    @pytest.mark.asyncio
    async def test_missing_resource_spans_is_accepted(self, client: httpx.AsyncClient):
        resp = await client.post("/v1/traces", json={"hello": "world"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

    @pytest.mark.asyncio
    async def test_decode_failure_is_500(self, client: httpx.AsyncClient):
        bad = raw_span("bad")
        bad["endTimeUnixNano"] = None
        payload = build_export(("svc", [[raw_span("good"), bad]]))

        resp = await client.post("/v1/traces", json=payload)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to process traces"}

        # no rollback: the span before the failure is kept
        spans = (await client.get("/telemetry/spans")).json()
        assert [s["operationName"] for s in spans["spans"]] == ["good"]

    @pytest.mark.asyncio
    async def test_invalid_json_is_400(self, client: httpx.AsyncClient):
        resp = await client.post(
            "/v1/traces",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid JSON in request body"}

    @pytest.mark.asyncio
    async def test_protobuf_acknowledged(self, client: httpx.AsyncClient):
        resp = await client.post(
            "/v1/traces",
            content=b"\x0a\x02\x08\x01",
            headers={"content-type": "application/x-protobuf"},
        )
        assert resp.status_code == 200
        assert (await client.get("/health")).json()["totalSpans"] == 0

    @pytest.mark.asyncio
    async def test_metrics_accepted(self, client: httpx.AsyncClient):
        resp = await client.post("/v1/metrics", json={"resourceMetrics": []})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert (await client.get("/health")).json()["totalSpans"] == 0

    @pytest.mark.asyncio
    async def test_body_too_large(self):
        app = create_app(ReceiverConfig(max_body_bytes=64))
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as c:
            resp = await c.post("/v1/traces", content=json.dumps({"pad": "x" * 200}))
        assert resp.status_code == 413


# ------------------------------------------------------------------
# Query endpoints
# ------------------------------------------------------------------


class TestQueries:
    @pytest.mark.asyncio
    async def test_spans_shape(self, client: httpx.AsyncClient):
        payload = build_export(
            (
                "mobile-app",
                [
                    [
                        raw_span(
                            "GET /a",
                            traceId=[0x1F, 0x0A],
                            attributes=[
                                {"key": "count", "value": {"intValue": "x"}},
                                {"key": "ok", "value": {"boolValue": True}},
                            ],
                        )
                    ]
                ],
            )
        )
        await client.post("/v1/traces", json=payload)

        data = (await client.get("/telemetry/spans")).json()
        assert data["total"] == 1
        span = data["spans"][0]
        assert span["traceId"] == "1f0a"
        assert span["operationName"] == "GET /a"
        assert span["serviceName"] == "mobile-app"
        assert span["status"] == "OK"
        assert span["duration"] == 25
        assert span["parentSpanId"] is None
        # NaN from a bad intValue is emitted as null
        assert span["attributes"] == {"count": None, "ok": True}

    @pytest.mark.asyncio
    async def test_spans_capped_to_page_limit(self):
        app = create_app(ReceiverConfig(spans_page_limit=3))
        spans = [raw_span(f"op-{i}") for i in range(5)]
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as c:
            await c.post("/v1/traces", json=build_export(("svc", [spans])))
            data = (await c.get("/telemetry/spans")).json()
        assert data["total"] == 5
        assert [s["operationName"] for s in data["spans"]] == ["op-4", "op-3", "op-2"]

    @pytest.mark.asyncio
    async def test_recent(self, client: httpx.AsyncClient):
        spans = [raw_span(f"op-{i}") for i in range(4)]
        await client.post("/v1/traces", json=build_export(("svc", [spans])))
        data = (await client.get("/telemetry/spans/recent", params={"limit": 2})).json()
        assert [s["operationName"] for s in data] == ["op-3", "op-2"]

    @pytest.mark.asyncio
    async def test_filters(self, client: httpx.AsyncClient):
        payload = build_export(
            ("auth", [[raw_span("login"), raw_span("logout")]]),
            ("web", [[raw_span("login")]]),
        )
        await client.post("/v1/traces", json=payload)

        by_service = (await client.get("/telemetry/spans/by-service", params={"name": "auth"})).json()
        assert [s["operationName"] for s in by_service] == ["login", "logout"]

        by_operation = (await client.get("/telemetry/spans/by-operation", params={"name": "login"})).json()
        assert [s["serviceName"] for s in by_operation] == ["auth", "web"]

    @pytest.mark.asyncio
    async def test_filters_with_http_span_names(self, client: httpx.AsyncClient):
        payload = build_export(
            ("api/v2", [[raw_span("GET /api/users"), raw_span("POST /api/users")]]),
        )
        await client.post("/v1/traces", json=payload)

        resp = await client.get("/telemetry/spans/by-operation", params={"name": "GET /api/users"})
        assert resp.status_code == 200
        assert [s["operationName"] for s in resp.json()] == ["GET /api/users"]

        resp = await client.get("/telemetry/spans/by-service", params={"name": "api/v2"})
        assert resp.status_code == 200
        assert len(resp.json()) == 2

    @pytest.mark.asyncio
    async def test_filter_requires_name(self, client: httpx.AsyncClient):
        resp = await client.get("/telemetry/spans/by-operation")
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_stats(self, client: httpx.AsyncClient):
        payload = build_export(
            ("svc", [[raw_span("a", status={"code": 2}), raw_span("a"), raw_span("b")]]),
        )
        await client.post("/v1/traces", json=payload)

        stats = (await client.get("/telemetry/stats")).json()
        assert stats["totalSpans"] == 3
        assert stats["uniqueServices"] == 1
        assert stats["uniqueOperations"] == 2
        assert stats["topOperations"] == [{"name": "a", "count": 2}, {"name": "b", "count": 1}]
        assert stats["errorCount"] == 1
        assert stats["successCount"] == 2

    @pytest.mark.asyncio
    async def test_empty_stats(self, client: httpx.AsyncClient):
        stats = (await client.get("/telemetry/stats")).json()
        assert stats == {
            "totalSpans": 0,
            "uniqueServices": 0,
            "uniqueOperations": 0,
            "timeRange": {"earliest": None, "latest": None},
            "topOperations": [],
            "errorCount": 0,
            "successCount": 0,
        }

    @pytest.mark.asyncio
    async def test_clear(self, client: httpx.AsyncClient):
        await client.post("/v1/traces", json=build_export(("svc", [[raw_span("a")]])))
        resp = await client.delete("/telemetry/clear")
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert (await client.get("/telemetry/stats")).json()["totalSpans"] == 0


# ------------------------------------------------------------------
# CORS
# ------------------------------------------------------------------


class TestCors:
    @pytest.mark.asyncio
    async def test_allowed_origin(self, client: httpx.AsyncClient):
        resp = await client.get("/health", headers={"Origin": "http://localhost:8081"})
        assert resp.headers.get("access-control-allow-origin") == "http://localhost:8081"

    @pytest.mark.asyncio
    async def test_unlisted_origin(self, client: httpx.AsyncClient):
        resp = await client.get("/health", headers={"Origin": "http://evil.example"})
        assert "access-control-allow-origin" not in resp.headers


# ------------------------------------------------------------------
# Config loading
# ------------------------------------------------------------------


class TestLoadConfig:
    def _args(self, **overrides):
        defaults = dict(config=None, host=None, port=None, max_spans=None, log_level=None, log_file=None, cors_origin=None)
        defaults.update(overrides)
        return argparse.Namespace(**defaults)

    def test_defaults(self, monkeypatch):
        for key in ("HOST", "PORT", "MAX_SPANS", "LOG_LEVEL", "LOG_FILE"):
            monkeypatch.delenv(f"OTLP_RECEIVER_{key}", raising=False)
        config = _load_config(self._args())
        assert config.port == 4318
        assert config.max_spans == 10_000

    def test_precedence(self, tmp_path, monkeypatch):
        path = tmp_path / "receiver.yaml"
        path.write_text("port: 5000\nmax_spans: 10\nlog_level: DEBUG\n")
        monkeypatch.setenv("OTLP_RECEIVER_MAX_SPANS", "20")
        monkeypatch.delenv("OTLP_RECEIVER_PORT", raising=False)
        monkeypatch.delenv("OTLP_RECEIVER_LOG_LEVEL", raising=False)

        config = _load_config(self._args(config=str(path), port=6000, cors_origin=["http://a"]))
        assert config.port == 6000
        assert config.max_spans == 20
        assert config.log_level == "DEBUG"
        assert config.cors_origins == ["http://a"]
