"""RequestLoggingMiddleware: logs every request and caps request body size.

Bodies are buffered up to ``max_body_bytes`` before the route sees them, so
the decoder never handles an oversized export.
"""

import json
import logging

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware:
    """Pure-ASGI middleware that logs requests and rejects oversized bodies.

    Requests declaring a ``content-length`` over the limit are rejected
    before reading; chunked bodies are counted while buffering.
    """

    def __init__(self, app: ASGIApp, *, max_body_bytes: int = 10 * 1024 * 1024) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "").upper()
        path = scope.get("path", "")
        headers = {k.decode("latin-1").lower(): v.decode("latin-1") for k, v in scope.get("headers", [])}
        logger.info("%s %s", method, path)
        logger.debug("Headers for %s %s: %s", method, path, headers)

        if method not in ("POST", "PUT", "PATCH"):
            await self.app(scope, receive, send)
            return

        declared = headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_body_bytes:
            await self._reject(send, method, path, int(declared))
            return

        await self._buffer_body(scope, receive, send, method, path)

    async def _buffer_body(self, scope: Scope, receive: Receive, send: Send, method: str, path: str) -> None:
        """Read the whole body (within the limit), then replay it downstream."""
        body_parts: list[bytes] = []
        size = 0
        more = True
        while more:
            msg = await receive()
            if msg["type"] == "http.disconnect":
                return
            chunk = msg.get("body", b"")
            size += len(chunk)
            if size > self.max_body_bytes:
                await self._reject(send, method, path, size)
                return
            body_parts.append(chunk)
            more = msg.get("more_body", False)

        raw = b"".join(body_parts)
        logger.debug("%s %s body: %d bytes", method, path, len(raw))

        # Replay the buffered body once, then fall through to the original
        # receive so disconnect detection keeps working.
        body_sent = False

        async def replay_receive() -> Message:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": raw, "more_body": False}
            return await receive()

        await self.app(scope, replay_receive, send)

    async def _reject(self, send: Send, method: str, path: str, size: int) -> None:
        logger.warning("Rejecting %s %s: body of %d bytes exceeds limit of %d", method, path, size, self.max_body_bytes)
        body = json.dumps({"error": "Request body too large"}).encode("utf-8")
        await send(
            {
                "type": "http.response.start",
                "status": 413,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"content-length", str(len(body)).encode("latin-1")),
                ],
            }
        )
        await send({"type": "http.response.body", "body": body})
