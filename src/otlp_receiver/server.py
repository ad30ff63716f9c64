"""FastAPI application factory and CLI entrypoint for otlp-receiver."""

import argparse
import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any

import yaml
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from otlp_receiver._version import __version__
from otlp_receiver.middleware import RequestLoggingMiddleware
from otlp_receiver.models import NormalizedSpan, ReceiverConfig
from otlp_receiver.processor import TraceProcessor
from otlp_receiver.store.base import SpanStore
from otlp_receiver.store.memory_store import MemorySpanStore

logger = logging.getLogger(__name__)

SERVICE_NAME = "OpenTelemetry Receiver"

_PROTOBUF_TYPES = ("application/x-protobuf", "application/protobuf")


# ------------------------------------------------------------------
# Store factory
# ------------------------------------------------------------------


def create_store(config: ReceiverConfig) -> SpanStore:
    return MemorySpanStore(max_spans=config.max_spans)


# ------------------------------------------------------------------
# App factory
# ------------------------------------------------------------------


def create_app(
    config: ReceiverConfig | None = None,
    store: SpanStore | None = None,
) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if config is None:
        config = ReceiverConfig()

    if store is None:
        store = create_store(config)

    processor = TraceProcessor(store)
    started_at = time.monotonic()

    app = FastAPI(title="otlp-receiver", version=__version__)

    # -- Middleware ---------------------------------------------------------

    # Added last = outermost: CORS preflights are answered before logging
    # and body buffering.
    app.add_middleware(RequestLoggingMiddleware, max_body_bytes=config.max_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "x-api-key"],
        allow_credentials=True,
    )

    # -- Service endpoints -------------------------------------------------

    @app.get("/")
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "traces": "/v1/traces",
                "metrics": "/v1/metrics",
                "spans": "/telemetry/spans",
                "recent": "/telemetry/spans/recent",
                "service_spans": "/telemetry/spans/by-service?name={service_name}",
                "operation_spans": "/telemetry/spans/by-operation?name={operation_name}",
                "stats": "/telemetry/stats",
                "clear": "/telemetry/clear",
            },
        }

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "timestamp": _utc_now_iso(),
            "uptime": time.monotonic() - started_at,
            "totalSpans": store.count(),
        }

    # -- OTLP ingest -------------------------------------------------------

    @app.post("/v1/traces")
    async def ingest_traces(request: Request):
        content_type = request.headers.get("content-type", "")
        body = await request.body()
        logger.info("Received traces data (content_type=%s, size=%d)", content_type, len(body))

        if content_type.startswith(_PROTOBUF_TYPES):
            # Only OTLP/JSON is decoded; protobuf exports are acknowledged.
            logger.warning("Protobuf traces payload ignored (%d bytes); configure the exporter for JSON", len(body))
            return {"success": True}

        payload, error = _parse_json(body)
        if error is not None:
            return error

        try:
            processor.process_traces(payload)
        except Exception:
            logger.exception("Error processing traces")
            return JSONResponse(status_code=500, content={"error": "Failed to process traces"})
        return {"success": True}

    @app.post("/v1/metrics")
    async def ingest_metrics(request: Request):
        body = await request.body()
        if request.headers.get("content-type", "").startswith(_PROTOBUF_TYPES):
            logger.info("Received protobuf metrics data (%d bytes)", len(body))
            return {"success": True}

        payload, error = _parse_json(body)
        if error is not None:
            return error

        try:
            processor.process_metrics(payload)
        except Exception:
            logger.exception("Error processing metrics")
            return JSONResponse(status_code=500, content={"error": "Failed to process metrics"})
        return {"success": True}

    # -- Query endpoints ---------------------------------------------------

    @app.get("/telemetry/spans")
    async def list_spans():
        spans = store.list_all()
        return {
            "total": len(spans),
            "spans": _dump_spans(spans[: config.spans_page_limit]),
        }

    @app.get("/telemetry/spans/recent")
    async def list_recent_spans(limit: int = Query(50)):
        return _dump_spans(store.list_recent(limit))

    @app.get("/telemetry/spans/by-service")
    async def list_service_spans(name: str = Query(...)):
        return _dump_spans(store.list_by_service(name))

    @app.get("/telemetry/spans/by-operation")
    async def list_operation_spans(name: str = Query(...)):
        return _dump_spans(store.list_by_operation(name))

    @app.get("/telemetry/stats")
    async def stats():
        return store.stats().model_dump(mode="json", by_alias=True)

    @app.delete("/telemetry/clear")
    async def clear():
        store.clear()
        logger.info("Cleared all telemetry data")
        return {"success": True, "message": "All telemetry data cleared"}

    # Store references on app for external access
    app.state.config = config  # type: ignore[attr-defined]
    app.state.store = store  # type: ignore[attr-defined]
    app.state.processor = processor  # type: ignore[attr-defined]

    return app


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _parse_json(body: bytes) -> tuple[Any, JSONResponse | None]:
    if not body:
        return None, None
    try:
        return json.loads(body), None
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Body parsing error: %s", exc)
        return None, JSONResponse(status_code=400, content={"error": "Invalid JSON in request body"})


def _dump_spans(spans: list[NormalizedSpan]) -> list[dict[str, Any]]:
    return [s.model_dump(mode="json", by_alias=True) for s in spans]


def _utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


# ------------------------------------------------------------------
# Config loading
# ------------------------------------------------------------------


def _load_config(args: argparse.Namespace) -> ReceiverConfig:
    """Build a ``ReceiverConfig`` from CLI args, env vars, and optional YAML file."""
    data: dict[str, Any] = {}

    # 1. YAML file (lowest priority)
    config_path = getattr(args, "config", None)
    if config_path:
        with open(config_path) as f:
            data.update(yaml.safe_load(f) or {})

    # 2. Env vars
    env_map = {
        "OTLP_RECEIVER_HOST": "host",
        "OTLP_RECEIVER_PORT": "port",
        "OTLP_RECEIVER_MAX_SPANS": "max_spans",
        "OTLP_RECEIVER_LOG_LEVEL": "log_level",
        "OTLP_RECEIVER_LOG_FILE": "log_file",
    }
    for env_key, config_key in env_map.items():
        val = os.environ.get(env_key)
        if val is not None:
            if config_key in ("port", "max_spans"):
                data[config_key] = int(val)
            else:
                data[config_key] = val

    # 3. CLI args (highest priority)
    for key in ("host", "port", "max_spans", "log_level", "log_file"):
        val = getattr(args, key, None)
        if val is not None:
            data[key] = val

    cors_origins = getattr(args, "cors_origin", None) or []
    if cors_origins:
        data["cors_origins"] = cors_origins

    return ReceiverConfig(**data)


def _configure_logging(config: ReceiverConfig) -> None:
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    if config.log_file:
        handler = logging.FileHandler(config.log_file)
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logging.getLogger().addHandler(handler)


# ------------------------------------------------------------------
# CLI entrypoint
# ------------------------------------------------------------------


def main() -> None:
    parser = argparse.ArgumentParser(description="otlp-receiver: OTLP/HTTP trace receiver with an in-memory span history")
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--config", type=str, default=None, help="Path to YAML config")
    parser.add_argument("--max-spans", type=int, default=None, help="Number of recent spans to keep")
    parser.add_argument(
        "--cors-origin",
        type=str,
        action="append",
        help="Allowed CORS origin (can be repeated)",
    )
    parser.add_argument("--log-level", type=str, default=None)
    parser.add_argument("--log-file", type=str, default=None)

    args = parser.parse_args()
    config = _load_config(args)

    _configure_logging(config)

    app = create_app(config)

    import uvicorn

    logger.info("OTLP receiver listening on http://%s:%d (traces: /v1/traces)", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
