"""Protocol session state machine and the registry that owns sessions."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from todo_mcp.domain.errors import (
    InternalError,
    InvalidArgumentsError,
    InvalidRequestError,
    InvalidSessionError,
    ProtocolError,
    StreamConflictError,
    UnknownOperationError,
)
from todo_mcp.domain.messages import (
    JsonRpcMessage,
    error_message,
    notification_message,
    result_message,
)
from todo_mcp.domain.sessions import SessionRecord, SessionStatus
from todo_mcp.services.operations import (
    InvocationContext,
    OperationRegistry,
    format_validation_errors,
)

logger = logging.getLogger(__name__)

LATEST_PROTOCOL_VERSION = "2025-03-26"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-03-26", "2024-11-05")

_MAX_ID_ATTEMPTS = 5
_STREAM_CLOSED = object()

CloseHook = Callable[["ProtocolSession"], None]


@dataclass(frozen=True)
class ServerIdentity:
    """Server name and version reported during initialization."""

    name: str
    version: str
    instructions: str | None = None


class InitializeParams(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    protocol_version: str = Field(alias="protocolVersion")
    capabilities: dict[str, object] = Field(default_factory=dict)
    client_info: dict[str, object] = Field(default_factory=dict, alias="clientInfo")


class ProtocolSession:
    """Handle on one client conversation.

    The record is shared with the registry; the session owns the outbound
    queue that feeds the client's server-push stream. States only move
    forward: uninitialized, active, closed.
    """

    def __init__(
        self,
        record: SessionRecord,
        operations: OperationRegistry,
        identity: ServerIdentity,
        queue_size: int = 100,
        debug: bool = False,
    ) -> None:
        self.record = record
        self.operations = operations
        self.identity = identity
        self.debug = debug
        self._outbound: asyncio.Queue[object] = asyncio.Queue(maxsize=queue_size)
        self._close_hooks: list[CloseHook] = []
        self._stream_attached = False
        self._methods: dict[str, Callable[[JsonRpcMessage], Awaitable[dict]]] = {
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
        }

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def status(self) -> SessionStatus:
        return self.record.status

    @property
    def is_active(self) -> bool:
        return self.record.status is SessionStatus.ACTIVE

    @property
    def has_stream(self) -> bool:
        return self._stream_attached

    def add_close_hook(self, hook: CloseHook) -> None:
        self._close_hooks.append(hook)

    def activate(self, params: dict[str, object]) -> dict[str, object]:
        """Complete the initialize handshake and return its result."""
        if self.record.status is not SessionStatus.UNINITIALIZED:
            raise InvalidRequestError("Session is already initialized")
        try:
            parsed = InitializeParams.model_validate(params)
        except ValidationError as exc:
            raise InvalidArgumentsError(
                "Invalid initialize parameters", data=format_validation_errors(exc)
            ) from exc
        version = parsed.protocol_version
        if version not in SUPPORTED_PROTOCOL_VERSIONS:
            version = LATEST_PROTOCOL_VERSION
        self.record.protocol_version = version
        self.record.client_info = parsed.client_info
        self.record.status = SessionStatus.ACTIVE
        self.record.touch()
        logger.info(
            "Session %s initialized (protocol %s, client %s)",
            self.id,
            version,
            parsed.client_info.get("name", "unknown"),
        )
        result: dict[str, object] = {
            "protocolVersion": version,
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {"subscribe": False, "listChanged": False},
                "prompts": {"listChanged": False},
                "logging": {},
            },
            "serverInfo": {
                "name": self.identity.name,
                "version": self.identity.version,
            },
        }
        if self.identity.instructions:
            result["instructions"] = self.identity.instructions
        return result

    async def handle_message(self, message: JsonRpcMessage) -> dict | None:
        """Process one inbound message and return its reply.

        Notifications return ``None``. Handler errors become JSON-RPC error
        replies carrying the request's id.
        """
        if not self.is_active:
            raise InvalidSessionError("Session is not active", request_id=message.id)
        self.record.touch()
        if message.is_notification:
            self._handle_notification(message)
            return None

        request_id = message.id
        if request_id in self.record.pending_requests:
            return error_message(
                request_id, InvalidRequestError(f"Request {request_id} already in flight")
            )
        self.record.pending_requests.add(request_id)
        try:
            reply = await self._dispatch(message)
        finally:
            self.record.pending_requests.discard(request_id)

        if not self.is_active:
            logger.debug(
                "Dropping reply to %s for closed session %s", request_id, self.id
            )
            raise InvalidSessionError(
                "Session closed before the reply was delivered", request_id=request_id
            )
        return reply

    async def _dispatch(self, message: JsonRpcMessage) -> dict:
        logger.debug("Session %s dispatching %s", self.id, message.method)
        try:
            if message.is_initialize:
                raise InvalidRequestError("Session is already initialized")
            method = self._methods.get(message.method)
            if method is None:
                raise UnknownOperationError(f"Method not found: {message.method}")
            return result_message(message.id, await method(message))
        except ProtocolError as exc:
            return error_message(message.id, exc)
        except Exception as exc:
            logger.exception(
                "Unhandled error in %s for session %s", message.method, self.id
            )
            detail = {"detail": f"{type(exc).__name__}: {exc}"} if self.debug else None
            return error_message(message.id, InternalError("Internal error", detail))

    def _handle_notification(self, message: JsonRpcMessage) -> None:
        if message.method == "notifications/initialized":
            self.record.client_initialized = True
        elif message.method == "notifications/cancelled":
            # handlers run to completion; the reply is still sent
            logger.debug(
                "Session %s cancel request for %s ignored",
                self.id,
                message.params.get("requestId"),
            )
        else:
            logger.debug("Session %s ignored notification %s", self.id, message.method)

    async def _ping(self, message: JsonRpcMessage) -> dict:
        return {}

    async def _list_tools(self, message: JsonRpcMessage) -> dict:
        return {"tools": self.operations.list_operations()}

    async def _call_tool(self, message: JsonRpcMessage) -> dict:
        name = message.params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidArgumentsError("tools/call requires a tool name")
        arguments = message.params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidArgumentsError("Tool arguments must be an object")
        context = InvocationContext(
            session_id=self.id, request_id=message.id, notify=self.notify
        )
        result = await self.operations.invoke(name, arguments, context)
        return result.to_payload()

    async def _list_resources(self, message: JsonRpcMessage) -> dict:
        return {"resources": self.operations.list_resources()}

    async def _read_resource(self, message: JsonRpcMessage) -> dict:
        uri = message.params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise InvalidArgumentsError("resources/read requires a uri")
        return await self.operations.read_resource(uri)

    async def _list_prompts(self, message: JsonRpcMessage) -> dict:
        return {"prompts": self.operations.list_prompts()}

    async def _get_prompt(self, message: JsonRpcMessage) -> dict:
        name = message.params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidArgumentsError("prompts/get requires a prompt name")
        arguments = message.params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise InvalidArgumentsError("Prompt arguments must be an object")
        return await self.operations.get_prompt(name, arguments)

    def notify(self, method: str, params: dict[str, object]) -> None:
        """Queue a notification for the session's push stream.

        Without an attached stream there is nobody to deliver to and the
        notification is dropped.
        """
        if not self.is_active or not self._stream_attached:
            return
        try:
            self._outbound.put_nowait(notification_message(method, params))
        except asyncio.QueueFull:
            logger.warning("Session %s stream backlog full, dropping %s", self.id, method)

    def open_stream(self) -> None:
        """Claim the session's single push stream."""
        if not self.is_active:
            raise InvalidSessionError("Session is not active")
        if self._stream_attached:
            raise StreamConflictError("A stream is already open for this session")
        self._stream_attached = True

    def release_stream(self) -> None:
        """Give up the push stream claim.

        Losing the stream while the session is still active counts as a
        client disconnect and closes the session. Safe to call repeatedly.
        """
        if not self._stream_attached:
            return
        self._stream_attached = False
        if self.is_active:
            self.close("stream disconnected")

    async def stream_events(
        self, keepalive_seconds: float | None = None
    ) -> AsyncIterator[dict | None]:
        """Yield pushed messages in send order until the session closes.

        ``None`` is yielded whenever ``keepalive_seconds`` pass without a
        message. If the consumer stops early (client disconnect) the session
        is closed.
        """
        try:
            while True:
                try:
                    item = await asyncio.wait_for(
                        self._outbound.get(), timeout=keepalive_seconds
                    )
                except TimeoutError:
                    yield None
                    continue
                if item is _STREAM_CLOSED:
                    return
                yield item
        finally:
            self.release_stream()

    def close(self, reason: str) -> None:
        """Move to ``closed``, run close hooks and end any open stream."""
        if self.record.status is SessionStatus.CLOSED:
            return
        self.record.status = SessionStatus.CLOSED
        self.record.close_reason = reason
        logger.info(
            "Session %s closed: %s (%d pending)",
            self.id,
            reason,
            len(self.record.pending_requests),
        )
        self._end_stream()
        hooks, self._close_hooks = self._close_hooks, []
        for hook in hooks:
            hook(self)

    def _end_stream(self) -> None:
        if self._outbound.full():
            self._outbound.get_nowait()
        self._outbound.put_nowait(_STREAM_CLOSED)


def _new_session_id() -> str:
    return str(uuid4())


@dataclass
class SessionRegistry:
    """Authoritative map of session id to live session.

    Mutations never await, so inserts and removals are atomic with respect
    to other tasks on the event loop.
    """

    operations: OperationRegistry
    identity: ServerIdentity
    queue_size: int = 100
    debug: bool = False
    id_factory: Callable[[], str] = _new_session_id
    _sessions: dict[str, ProtocolSession] = field(default_factory=dict, repr=False)

    def create(self) -> ProtocolSession:
        """Allocate a fresh id and insert an uninitialized session."""
        session_id = self._allocate_id()
        session = ProtocolSession(
            SessionRecord(id=session_id),
            operations=self.operations,
            identity=self.identity,
            queue_size=self.queue_size,
            debug=self.debug,
        )
        session.add_close_hook(lambda closed: self.remove(closed.id))
        self._sessions[session_id] = session
        logger.info("Session %s created", session_id)
        return session

    def lookup(self, session_id: str) -> ProtocolSession | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> None:
        """Forget a session; unknown ids are ignored."""
        if self._sessions.pop(session_id, None) is not None:
            logger.debug("Session %s removed from registry", session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def close_idle(
        self, max_idle_seconds: float, now: datetime | None = None
    ) -> list[str]:
        """Close sessions idle for longer than ``max_idle_seconds``."""
        current = now or datetime.now(tz=UTC)
        expired = [
            session
            for session in self._sessions.values()
            if session.record.idle_seconds(current) > max_idle_seconds
            and not session.record.pending_requests
            and not session.has_stream
        ]
        for session in expired:
            session.close("idle timeout")
        return [session.id for session in expired]

    def close_all(self, reason: str) -> None:
        for session in list(self._sessions.values()):
            session.close(reason)

    def _allocate_id(self) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self.id_factory()
            if candidate not in self._sessions:
                return candidate
        raise RuntimeError("Could not allocate a unique session id")


async def sweep_idle_sessions(
    registry: SessionRegistry, max_idle_seconds: float, interval_seconds: float
) -> None:
    """Periodically close idle sessions until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        expired = registry.close_idle(max_idle_seconds)
        if expired:
            logger.info("Closed %d idle session(s)", len(expired))
