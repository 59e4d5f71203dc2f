"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from todo_mcp.adapters.json_task_store import JsonFileTaskStore
from todo_mcp.config import Settings
from todo_mcp.services.operations import OperationRegistry
from todo_mcp.services.router import RequestRouter
from todo_mcp.services.sessions import ServerIdentity, SessionRegistry
from todo_mcp.services.tasks import TaskService, TaskStore
from todo_mcp.services.todo_operations import register_todo_operations


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    task_store: TaskStore
    task_service: TaskService
    operation_registry: OperationRegistry
    session_registry: SessionRegistry
    router: RequestRouter
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    task_store = JsonFileTaskStore.create(resolved_settings.store_path)
    task_service = TaskService(task_store)
    operation_registry = OperationRegistry()
    register_todo_operations(operation_registry, task_service)
    session_registry = SessionRegistry(
        operations=operation_registry,
        identity=ServerIdentity(
            name=resolved_settings.server_name,
            version=resolved_settings.server_version,
        ),
        queue_size=resolved_settings.stream_queue_size,
        debug=resolved_settings.environment == "local",
    )
    router = RequestRouter(session_registry)

    async def close_resources() -> None:
        session_registry.close_all("server shutdown")

    return AppContainer(
        settings=resolved_settings,
        task_store=task_store,
        task_service=task_service,
        operation_registry=operation_registry,
        session_registry=session_registry,
        router=router,
        close_resources=close_resources,
    )
