"""Todo tools, resources and prompts exposed to protocol clients."""

import json
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from todo_mcp.domain.errors import InvalidArgumentsError
from todo_mcp.domain.tasks import TaskRecord
from todo_mcp.services.operations import (
    HandlerResult,
    InvocationContext,
    OperationArguments,
    OperationRegistry,
    PromptArgument,
)
from todo_mcp.services.tasks import TaskService, completion_label


class CreateTodoArguments(OperationArguments):
    title: str = Field(description="Task title")
    completed: bool = Field(default=False, description="Task completion status")


class ListTodosArguments(OperationArguments):
    completed: bool | None = Field(
        default=None, description="Filter by completion status"
    )


class UpdateTodoArguments(OperationArguments):
    id: str = Field(description="Todo ID to update")
    title: str | None = Field(default=None, description="New title for the todo")
    completed: bool | None = Field(default=None, description="New completion status")


class DeleteTodoArguments(OperationArguments):
    id: str = Field(description="Todo ID to delete")


class SummarizeTodosArguments(OperationArguments):
    completed: bool | None = Field(
        default=None,
        description=(
            "Filter by completion status. If not provided, summarizes all todos."
        ),
    )


class TodoPayload(BaseModel):
    """Output contract for a single todo."""

    id: str
    title: str
    completed: bool
    createdAt: str  # noqa: N815
    updatedAt: str  # noqa: N815


class DeleteTodoPayload(BaseModel):
    success: bool
    deletedTodo: TodoPayload | None = None  # noqa: N815


class TodoSummaryPayload(BaseModel):
    summaryText: str  # noqa: N815
    todosCount: int  # noqa: N815
    completedCount: int  # noqa: N815
    incompleteCount: int  # noqa: N815


def register_todo_operations(  # noqa: PLR0915
    registry: OperationRegistry, task_service: TaskService
) -> None:
    """Register the todo tools, resources and prompt on ``registry``."""

    async def create_todo(
        operation: str, arguments: CreateTodoArguments, context: InvocationContext
    ) -> HandlerResult:
        task = await task_service.create_task(arguments.title, arguments.completed)
        context.log(f"Created todo {task.id}")
        return HandlerResult(
            text=f'Created todo "{task.title}" ({_status_label(task)})',
            value=task.to_payload(),
        )

    async def list_todos(
        operation: str, arguments: ListTodosArguments, context: InvocationContext
    ) -> HandlerResult:
        tasks = await task_service.list_tasks(arguments.completed)
        return HandlerResult(
            text=_format_todo_list(tasks, arguments.completed),
            value=[task.to_payload() for task in tasks],
        )

    async def update_todo(
        operation: str, arguments: UpdateTodoArguments, context: InvocationContext
    ) -> HandlerResult:
        task = await task_service.update_task(
            arguments.id, title=arguments.title, completed=arguments.completed
        )
        context.log(f"Updated todo {task.id}")
        return HandlerResult(
            text=f"Updated todo: {task.title} ({_status_label(task)})",
            value=task.to_payload(),
        )

    async def delete_todo(
        operation: str, arguments: DeleteTodoArguments, context: InvocationContext
    ) -> HandlerResult:
        result = await task_service.delete_task(arguments.id)
        if result.deleted is None:
            text = f"No todo with ID {arguments.id} to delete"
        else:
            context.log(f"Deleted todo {arguments.id}")
            text = f'Todo "{result.deleted.title}" has been deleted'
        return HandlerResult(text=text, value=result.to_payload())

    async def summarize_todos(
        operation: str, arguments: SummarizeTodosArguments, context: InvocationContext
    ) -> HandlerResult:
        summary = await task_service.summarize(arguments.completed)
        return HandlerResult(text=summary.text, value=summary.to_payload())

    registry.register_operation(
        "createTodo",
        "Create a new todo item",
        CreateTodoArguments,
        TodoPayload,
        create_todo,
    )
    registry.register_operation(
        "listTodos",
        "List all todo items",
        ListTodosArguments,
        list[TodoPayload],
        list_todos,
    )
    registry.register_operation(
        "updateTodo",
        "Update an existing todo",
        UpdateTodoArguments,
        TodoPayload,
        update_todo,
    )
    registry.register_operation(
        "deleteTodo",
        "Delete an existing todo",
        DeleteTodoArguments,
        DeleteTodoPayload,
        delete_todo,
    )
    registry.register_operation(
        "summarizeTodos",
        "Summarize todo items, optionally filtering by completion status",
        SummarizeTodosArguments,
        TodoSummaryPayload,
        summarize_todos,
    )

    for uri, completed, label in (
        ("todos://all", None, "All todos"),
        ("todos://completed", True, "Completed todos"),
        ("todos://incomplete", False, "Incomplete todos"),
    ):
        registry.register_resource(
            uri=uri,
            name=label,
            description=f"{label} as a JSON array",
            reader=_todos_reader(task_service, completed),
        )

    async def read_current_time() -> str:
        return datetime.now(tz=UTC).isoformat()

    registry.register_resource(
        uri="todo-manager://current-time",
        name="Current time",
        description="Current server time",
        reader=read_current_time,
        mime_type="text/plain",
    )

    async def render_summary_prompt(arguments: dict[str, str]) -> list[dict[str, object]]:
        completed = _parse_prompt_bool(arguments.get("completed"))
        summary = await task_service.summarize(completed)
        label = completion_label(completed)
        request = "Please summarize all my todos."
        if label:
            request = f"Please summarize my {label} todos."
        return [
            {
                "role": "user",
                "content": {"type": "text", "text": f"{request}\n\n{summary.text}"},
            }
        ]

    registry.register_prompt(
        "summarize-todos",
        "Generates a summary of todo items, optionally filtering by completion "
        "status.",
        (
            PromptArgument(
                name="completed",
                description=(
                    "Filter by completion status (true for completed, false for "
                    "incomplete). If not provided, summarizes all todos."
                ),
            ),
        ),
        render_summary_prompt,
    )


def _todos_reader(task_service: TaskService, completed: bool | None):
    async def read() -> str:
        tasks = await task_service.list_tasks(completed)
        return json.dumps([task.to_payload() for task in tasks])

    return read


def _status_label(task: TaskRecord) -> str:
    return "completed" if task.completed else "not completed"


def _format_todo_list(tasks: list[TaskRecord], completed: bool | None) -> str:
    if not tasks:
        label = completion_label(completed)
        if label:
            return f"You don't have any {label} todos yet."
        return "You don't have any todos yet."
    lines = ["Here are your todos:"]
    for task in tasks:
        mark = "✓" if task.completed else "□"
        created = task.created_at.strftime("%Y-%m-%d %H:%M")
        lines.append(f"• {task.title} ({mark}) - Created: {created}")
    return "\n".join(lines)


def _parse_prompt_bool(raw: str | None) -> bool | None:
    if raw is None or raw.strip() == "":
        return None
    value = raw.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    raise InvalidArgumentsError("Argument 'completed' must be 'true' or 'false'")
