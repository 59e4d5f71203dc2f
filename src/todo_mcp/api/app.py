"""FastAPI application factory."""

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from todo_mcp.api.middleware import RequestLoggingMiddleware
from todo_mcp.app_logging import configure_logging
from todo_mcp.config import parse_cors_origins
from todo_mcp.containers import AppContainer
from todo_mcp.domain.errors import InternalError, NotAcceptableError, ProtocolError
from todo_mcp.domain.messages import (
    JSONRPC_VERSION,
    REQUEST_ID_HEADER,
    SESSION_HEADER,
    error_message,
)
from todo_mcp.services.sessions import ProtocolSession, sweep_idle_sessions


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    settings = container.settings
    configure_logging(settings.log_level)
    logger = logging.getLogger(__name__)
    debug = settings.environment == "local"

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = asyncio.create_task(
            sweep_idle_sessions(
                app.state.container.session_registry,
                max_idle_seconds=settings.session_idle_timeout_seconds,
                interval_seconds=settings.session_sweep_interval_seconds,
            )
        )
        logger.info(
            "%s %s serving on port %s",
            settings.server_name,
            settings.server_version,
            settings.port,
        )
        yield
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await app.state.container.close_resources()

    app = FastAPI(
        title=settings.server_name,
        version=settings.server_version,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_cors_origins(settings.cors_allow_origins),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER, REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(ProtocolError)
    async def protocol_error_handler(
        request: Request, exc: ProtocolError
    ) -> JSONResponse:
        return JSONResponse(
            error_message(exc.request_id, exc), status_code=exc.status_code
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = request.scope.get("state", {}).get("request_id", "-")
        logger.exception("[%s] Unhandled error", request_id)
        detail = {"detail": f"{type(exc).__name__}: {exc}"} if debug else None
        error = InternalError("Internal Server Error", detail)
        headers = {REQUEST_ID_HEADER: request_id} if request_id != "-" else None
        return JSONResponse(
            error_message(None, error), status_code=error.status_code, headers=headers
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/mcp")
    async def send_message(request: Request) -> Response:
        """Handle client-to-server messages, including initialization."""
        _require_accept(request, "application/json")
        state_container: AppContainer = request.app.state.container
        reply = await state_container.router.send(
            request.headers.get(SESSION_HEADER), await request.body()
        )
        if reply.payload is None:
            return Response(status_code=reply.status_code)
        headers = {SESSION_HEADER: reply.session_id} if reply.session_id else None
        return JSONResponse(
            reply.payload, status_code=reply.status_code, headers=headers
        )

    @app.get("/mcp")
    async def open_stream(request: Request) -> StreamingResponse:
        """Open the server-to-client notification stream for a session."""
        _require_accept(request, "text/event-stream")
        state_container: AppContainer = request.app.state.container
        session = state_container.router.open_stream(request.headers.get(SESSION_HEADER))
        return SessionStreamResponse(
            session,
            settings.stream_keepalive_seconds,
            headers={"Cache-Control": "no-cache", SESSION_HEADER: session.id},
        )

    @app.delete("/mcp")
    async def terminate_session(request: Request) -> dict[str, object]:
        """Terminate a session."""
        state_container: AppContainer = request.app.state.container
        state_container.router.terminate(request.headers.get(SESSION_HEADER))
        return {"jsonrpc": JSONRPC_VERSION, "result": {"terminated": True}}

    return app


class SessionStreamResponse(StreamingResponse):
    """Server-sent event stream bound to one session's push queue.

    The session's stream claim is released however the response ends,
    including when the client goes away before the body starts.
    """

    def __init__(
        self,
        session: ProtocolSession,
        keepalive_seconds: float,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(
            _event_stream(session, keepalive_seconds),
            media_type="text/event-stream",
            headers=headers,
        )
        self.session = session

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.session.release_stream()


async def _event_stream(
    session: ProtocolSession, keepalive_seconds: float
) -> AsyncIterator[str]:
    """Render pushed session messages as server-sent events."""
    events = session.stream_events(keepalive_seconds)
    async with contextlib.aclosing(events):
        async for message in events:
            if message is None:
                yield ": keepalive\n\n"
                continue
            yield f"event: message\ndata: {json.dumps(message)}\n\n"


def _require_accept(request: Request, media_type: str) -> None:
    """Reject requests whose Accept header excludes ``media_type``.

    A missing Accept header accepts anything.
    """
    raw = request.headers.get("accept")
    if not raw:
        return
    accepted = {part.split(";")[0].strip().lower() for part in raw.split(",")}
    family = media_type.split("/")[0]
    if accepted & {media_type, f"{family}/*", "*/*"}:
        return
    raise NotAcceptableError(f"Not Acceptable: client must accept {media_type}")
