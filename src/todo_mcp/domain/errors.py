"""Protocol error taxonomy."""

from enum import IntEnum
from http import HTTPStatus


class ErrorCode(IntEnum):
    """JSON-RPC error codes returned to clients."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    UNKNOWN_OPERATION = -32601
    INVALID_ARGUMENTS = -32602
    INTERNAL_ERROR = -32603
    INVALID_SESSION = -32000
    NOT_FOUND = -32002


class ProtocolError(Exception):
    """Base error rendered as a structured JSON-RPC error body."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = HTTPStatus.OK

    def __init__(
        self,
        message: str,
        data: object | None = None,
        request_id: int | str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.data = data
        self.request_id = request_id

    def to_error(self) -> dict[str, object]:
        error: dict[str, object] = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class InvalidSessionError(ProtocolError):
    """Missing, unknown or closed session id."""

    code = ErrorCode.INVALID_SESSION
    status_code = HTTPStatus.BAD_REQUEST


class ParseError(ProtocolError):
    """Request body is not valid JSON."""

    code = ErrorCode.PARSE_ERROR
    status_code = HTTPStatus.BAD_REQUEST


class InvalidRequestError(ProtocolError):
    """Request body is JSON but not an acceptable JSON-RPC message."""

    code = ErrorCode.INVALID_REQUEST
    status_code = HTTPStatus.BAD_REQUEST


class NotAcceptableError(ProtocolError):
    """Client does not accept the content type the endpoint produces."""

    code = ErrorCode.INVALID_REQUEST
    status_code = HTTPStatus.NOT_ACCEPTABLE


class StreamConflictError(ProtocolError):
    """A push stream is already open for the session."""

    code = ErrorCode.INVALID_REQUEST
    status_code = HTTPStatus.CONFLICT


class UnknownOperationError(ProtocolError):
    """Method, tool or prompt name is not registered."""

    code = ErrorCode.UNKNOWN_OPERATION


class InvalidArgumentsError(ProtocolError):
    """Arguments failed the operation's input contract."""

    code = ErrorCode.INVALID_ARGUMENTS


class NotFoundError(ProtocolError):
    """A referenced entity does not exist."""

    code = ErrorCode.NOT_FOUND


class InternalError(ProtocolError):
    """Unexpected failure; detail stays in the server log."""

    code = ErrorCode.INTERNAL_ERROR
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
