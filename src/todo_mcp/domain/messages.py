"""JSON-RPC message models."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from todo_mcp.domain.errors import ProtocolError
from todo_mcp.domain.sessions import RequestId

JSONRPC_VERSION = "2.0"
INITIALIZE_METHOD = "initialize"
SESSION_HEADER = "Mcp-Session-Id"
REQUEST_ID_HEADER = "Mcp-Request-Id"


class JsonRpcMessage(BaseModel):
    """Inbound JSON-RPC request or notification."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: Literal["2.0"]
    id: RequestId | None = None
    method: str = Field(min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_notification(self) -> bool:
        return self.id is None

    @property
    def is_initialize(self) -> bool:
        return self.method == INITIALIZE_METHOD and not self.is_notification


def result_message(request_id: RequestId | None, result: dict[str, object]) -> dict:
    """Build a JSON-RPC success reply."""
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_message(request_id: RequestId | None, error: ProtocolError) -> dict:
    """Build a JSON-RPC error reply."""
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error.to_error()}


def notification_message(method: str, params: dict[str, object] | None = None) -> dict:
    """Build a JSON-RPC notification (no correlation id)."""
    message: dict[str, object] = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        message["params"] = params
    return message
