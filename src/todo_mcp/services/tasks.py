"""Todo business logic built on a whole-document task store."""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

from todo_mcp.domain.errors import NotFoundError
from todo_mcp.domain.tasks import UNTITLED_TODO, DeleteResult, TaskRecord, TaskSummary

logger = logging.getLogger(__name__)

_SUMMARY_PREVIEW = 3


class TaskStore(Protocol):
    """Persistence interface for the todo list, read and written wholesale."""

    async def read_all(self) -> list[TaskRecord]:
        """Return every stored record in creation order."""

    async def write_all(self, tasks: list[TaskRecord]) -> None:
        """Replace the stored records."""


@dataclass
class TaskService:
    """Application service for todo CRUD and summaries.

    Mutations run one at a time: the read-modify-write cycle of create,
    update and delete holds ``_mutation_lock`` across both store suspension
    points, so concurrent sessions cannot lose each other's writes. Reads
    are not serialized.
    """

    store: TaskStore
    _mutation_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def create_task(self, title: str, completed: bool = False) -> TaskRecord:
        """Create a todo with a fresh id and timestamps."""
        now = datetime.now(tz=UTC)
        task = TaskRecord(
            id=str(uuid4()),
            title=title or UNTITLED_TODO,
            completed=completed,
            created_at=now,
            updated_at=now,
        )
        async with self._mutation_lock:
            tasks = await self.store.read_all()
            tasks.append(task)
            await self.store.write_all(tasks)
        logger.info("Created todo %s", task.id)
        return task

    async def list_tasks(self, completed: bool | None = None) -> list[TaskRecord]:
        """Return all todos, or those whose completion equals the filter."""
        tasks = await self.store.read_all()
        if completed is None:
            return tasks
        return [task for task in tasks if task.completed is completed]

    async def update_task(
        self, task_id: str, title: str | None = None, completed: bool | None = None
    ) -> TaskRecord:
        """Apply the provided fields to a todo and refresh ``updated_at``."""
        async with self._mutation_lock:
            tasks = await self.store.read_all()
            index = _find_index(tasks, task_id)
            if index is None:
                raise NotFoundError(f"Todo with ID {task_id} not found")
            current = tasks[index]
            updated = replace(
                current,
                title=current.title if title is None else title,
                completed=current.completed if completed is None else completed,
                updated_at=max(datetime.now(tz=UTC), current.updated_at),
            )
            tasks[index] = updated
            await self.store.write_all(tasks)
        logger.info("Updated todo %s", task_id)
        return updated

    async def delete_task(self, task_id: str) -> DeleteResult:
        """Delete a todo if present; deleting a missing id is not an error."""
        async with self._mutation_lock:
            tasks = await self.store.read_all()
            index = _find_index(tasks, task_id)
            if index is None:
                return DeleteResult(success=False)
            deleted = tasks.pop(index)
            await self.store.write_all(tasks)
        logger.info("Deleted todo %s", task_id)
        return DeleteResult(success=True, deleted=deleted)

    async def summarize(self, completed: bool | None = None) -> TaskSummary:
        """Summarize the todo list, optionally restricted by completion."""
        tasks = await self.list_tasks(completed)
        completed_count = sum(1 for task in tasks if task.completed)
        incomplete_count = len(tasks) - completed_count
        return TaskSummary(
            text=_summary_text(tasks, completed, completed_count, incomplete_count),
            total=len(tasks),
            completed=completed_count,
            incomplete=incomplete_count,
        )


def _find_index(tasks: list[TaskRecord], task_id: str) -> int | None:
    for index, task in enumerate(tasks):
        if task.id == task_id:
            return index
    return None


def completion_label(completed: bool | None) -> str:
    """Return the adjective used for a completion filter."""
    if completed is None:
        return ""
    return "completed" if completed else "incomplete"


def _summary_text(
    tasks: list[TaskRecord],
    completed: bool | None,
    completed_count: int,
    incomplete_count: int,
) -> str:
    if not tasks:
        label = completion_label(completed)
        if label:
            return f"You currently have no {label} todos."
        return "You currently have no todos."
    titles = [task.title for task in tasks]
    if completed is True:
        return (
            f"You have {completed_count} completed todo(s). "
            f"These include: {', '.join(titles)}."
        )
    if completed is False:
        return (
            f"You have {incomplete_count} incomplete todo(s). "
            f"These include: {', '.join(titles)}."
        )
    preview = ", ".join(titles[:_SUMMARY_PREVIEW])
    more = "..." if len(titles) > _SUMMARY_PREVIEW else ""
    return (
        f"You have a total of {len(tasks)} todo(s). {completed_count} are "
        f"completed and {incomplete_count} are incomplete. "
        f"Here are a few: {preview}{more}."
    )
