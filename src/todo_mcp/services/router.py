"""Routes inbound protocol requests to the right session."""

import json
import logging
from dataclasses import dataclass
from http import HTTPStatus

from pydantic import ValidationError

from todo_mcp.domain.errors import (
    InvalidRequestError,
    InvalidSessionError,
    ParseError,
    ProtocolError,
)
from todo_mcp.domain.messages import JsonRpcMessage, error_message, result_message
from todo_mcp.services.operations import format_validation_errors
from todo_mcp.services.sessions import ProtocolSession, SessionRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutedReply:
    """Reply produced for a send request."""

    payload: dict | None
    status_code: int = HTTPStatus.OK
    session_id: str | None = None


def decode_message(body: bytes) -> JsonRpcMessage:
    """Decode a request body into a single JSON-RPC message."""
    try:
        raw = json.loads(body)
    except ValueError as exc:
        raise ParseError("Parse error: body is not valid JSON") from exc
    if isinstance(raw, list):
        raise InvalidRequestError("Batch requests are not supported")
    if not isinstance(raw, dict):
        raise InvalidRequestError("Invalid Request: expected a JSON-RPC object")
    try:
        return JsonRpcMessage.model_validate(raw)
    except ValidationError as exc:
        raise InvalidRequestError(
            "Invalid Request: not a JSON-RPC message",
            data=format_validation_errors(exc),
        ) from exc


@dataclass
class RequestRouter:
    """Dispatches send, open-stream and terminate requests by session id."""

    sessions: SessionRegistry

    async def send(self, session_id: str | None, body: bytes) -> RoutedReply:
        """Deliver a message to its session, or start a session on initialize."""
        if session_id:
            session = self._resolve(session_id)
            try:
                message = decode_message(body)
            except ProtocolError:
                session.close("protocol decode error")
                raise
            reply = await session.handle_message(message)
            if reply is None:
                return RoutedReply(payload=None, status_code=HTTPStatus.ACCEPTED)
            return RoutedReply(payload=reply)

        message = decode_message(body)
        if not message.is_initialize:
            raise InvalidSessionError(
                "Bad Request: No valid session ID provided or not an "
                "initialization request",
                request_id=message.id,
            )
        session = self.sessions.create()
        try:
            result = session.activate(message.params)
        except ProtocolError as exc:
            session.close("initialization failed")
            return RoutedReply(
                payload=error_message(message.id, exc), status_code=exc.status_code
            )
        return RoutedReply(
            payload=result_message(message.id, result), session_id=session.id
        )

    def open_stream(self, session_id: str | None) -> ProtocolSession:
        """Attach a server-push stream to an active session."""
        session = self._resolve(session_id)
        session.open_stream()
        return session

    def terminate(self, session_id: str | None) -> None:
        """Close an active session at the client's request."""
        session = self._resolve(session_id)
        session.close("terminated by client")

    def _resolve(self, session_id: str | None) -> ProtocolSession:
        session = self.sessions.lookup(session_id) if session_id else None
        if session is None or not session.is_active:
            logger.debug("Rejected request for session %s", session_id)
            raise InvalidSessionError("Invalid or missing session ID")
        return session
