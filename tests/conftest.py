"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field

import pytest
from fastapi.testclient import TestClient

from todo_mcp.config import Settings
from todo_mcp.containers import AppContainer
from todo_mcp.domain.messages import SESSION_HEADER
from todo_mcp.domain.tasks import TaskRecord
from todo_mcp.services.operations import OperationRegistry
from todo_mcp.services.router import RequestRouter
from todo_mcp.services.sessions import (
    ProtocolSession,
    ServerIdentity,
    SessionRegistry,
)
from todo_mcp.services.tasks import TaskService, TaskStore
from todo_mcp.services.todo_operations import register_todo_operations

INITIALIZE_PARAMS = {
    "protocolVersion": "2025-03-26",
    "capabilities": {},
    "clientInfo": {"name": "test-client", "version": "0.1.0"},
}


@dataclass
class InMemoryTaskStore(TaskStore):
    """In-memory task store for tests.

    ``yield_between`` makes every read and write suspend once, so
    concurrent mutations interleave the way they would on real disk I/O.
    """

    tasks: list[TaskRecord] = field(default_factory=list)
    reads: int = 0
    writes: int = 0
    yield_between: bool = False

    async def read_all(self) -> list[TaskRecord]:
        self.reads += 1
        if self.yield_between:
            await asyncio.sleep(0)
        return list(self.tasks)

    async def write_all(self, tasks: list[TaskRecord]) -> None:
        self.writes += 1
        if self.yield_between:
            await asyncio.sleep(0)
        self.tasks = list(tasks)


def open_session(registry: SessionRegistry) -> ProtocolSession:
    """Create and initialize a session on ``registry``."""
    session = registry.create()
    session.activate(dict(INITIALIZE_PARAMS))
    return session


def initialize_session(client: TestClient) -> str:
    """Run the initialize handshake over HTTP and return the session id."""
    response = client.post(
        "/mcp",
        json={
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": INITIALIZE_PARAMS,
        },
    )
    assert response.status_code == 200
    return response.headers[SESSION_HEADER]


def call_tool(
    client: TestClient,
    session_id: str,
    name: str,
    arguments: dict[str, object] | None = None,
    request_id: int = 2,
) -> dict:
    """Invoke a tool over HTTP and return the JSON-RPC reply."""
    response = client.post(
        "/mcp",
        json={
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "tools/call",
            "params": {"name": name, "arguments": arguments or {}},
        },
        headers={SESSION_HEADER: session_id},
    )
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        store_path=str(tmp_path / "db.json"),
        environment="test",
        server_name="Test Todo Server",
        server_version="9.9.9",
    )


@pytest.fixture
def task_store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def task_service(task_store: InMemoryTaskStore) -> TaskService:
    return TaskService(task_store)


@pytest.fixture
def operation_registry(task_service: TaskService) -> OperationRegistry:
    registry = OperationRegistry()
    register_todo_operations(registry, task_service)
    return registry


@pytest.fixture
def session_registry(
    settings: Settings, operation_registry: OperationRegistry
) -> SessionRegistry:
    return SessionRegistry(
        operations=operation_registry,
        identity=ServerIdentity(
            name=settings.server_name, version=settings.server_version
        ),
        queue_size=settings.stream_queue_size,
    )


@pytest.fixture
def container(
    settings: Settings,
    task_store: InMemoryTaskStore,
    task_service: TaskService,
    operation_registry: OperationRegistry,
    session_registry: SessionRegistry,
) -> AppContainer:
    async def close_resources() -> None:
        session_registry.close_all("server shutdown")

    return AppContainer(
        settings=settings,
        task_store=task_store,
        task_service=task_service,
        operation_registry=operation_registry,
        session_registry=session_registry,
        router=RequestRouter(session_registry),
        close_resources=close_resources,
    )
