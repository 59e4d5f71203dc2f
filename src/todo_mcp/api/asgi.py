"""ASGI entrypoint for the todo MCP server."""

from todo_mcp.api.app import create_app
from todo_mcp.containers import build_container

app = create_app(build_container())
