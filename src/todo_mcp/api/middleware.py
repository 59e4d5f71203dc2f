"""Request logging middleware."""

import logging
import time
from uuid import uuid4

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from todo_mcp.domain.messages import REQUEST_ID_HEADER, SESSION_HEADER

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware:
    """Log one line when a request arrives and one when its response starts.

    The response status is observed from the ASGI ``http.response.start``
    event; bodies are never buffered. The request id comes from the
    ``Mcp-Request-Id`` header when the client sends one and is echoed back.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        request_id = headers.get(REQUEST_ID_HEADER) or uuid4().hex[:8]
        scope.setdefault("state", {})["request_id"] = request_id
        method = scope["method"]
        path = scope["path"]
        started = time.perf_counter()
        response_started = False
        logger.info(
            "[%s] %s %s session=%s",
            request_id,
            method,
            path,
            headers.get(SESSION_HEADER, "-"),
        )

        async def on_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.info(
                    "[%s] %s %s -> %s (%.1f ms)",
                    request_id,
                    method,
                    path,
                    message["status"],
                    elapsed_ms,
                )
            await send(message)

        try:
            await self.app(scope, receive, on_send)
        except Exception:
            logger.error(
                "[%s] %s %s -> %s (%.1f ms)",
                request_id,
                method,
                path,
                "aborted" if response_started else 500,
                (time.perf_counter() - started) * 1000,
            )
            raise
