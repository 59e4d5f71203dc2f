"""Tests for todo business logic."""

import asyncio

import pytest

from todo_mcp.domain.errors import NotFoundError
from todo_mcp.services.tasks import TaskService
from tests.conftest import InMemoryTaskStore


def test_todo_lifecycle_scenario(task_service: TaskService) -> None:
    created = asyncio.run(task_service.create_task("Buy milk"))
    assert created.completed is False
    assert created.created_at == created.updated_at

    listed = asyncio.run(task_service.list_tasks())
    assert listed == [created]

    updated = asyncio.run(task_service.update_task(created.id, completed=True))
    assert updated.id == created.id
    assert updated.title == "Buy milk"
    assert updated.completed is True

    deleted = asyncio.run(task_service.delete_task(created.id))
    assert deleted.success is True
    assert deleted.deleted == updated
    assert deleted.to_payload()["deletedTodo"]["title"] == "Buy milk"

    again = asyncio.run(task_service.delete_task(created.id))
    assert again.success is False
    assert again.deleted is None
    assert "deletedTodo" not in again.to_payload()


def test_create_uses_fallback_title(task_service: TaskService) -> None:
    created = asyncio.run(task_service.create_task("", completed=True))
    assert created.title == "Untitled Todo"
    assert created.completed is True


def test_create_assigns_unique_ids(task_service: TaskService) -> None:
    first = asyncio.run(task_service.create_task("One"))
    second = asyncio.run(task_service.create_task("Two"))
    assert first.id != second.id


def test_update_title_leaves_completion_unchanged(task_service: TaskService) -> None:
    created = asyncio.run(task_service.create_task("Walk the dog", completed=True))

    updated = asyncio.run(task_service.update_task(created.id, title="Walk the cat"))

    assert updated.title == "Walk the cat"
    assert updated.completed is True
    assert updated.created_at == created.created_at
    assert updated.updated_at >= created.updated_at


def test_update_completion_leaves_title_unchanged(task_service: TaskService) -> None:
    created = asyncio.run(task_service.create_task("Read a book"))

    updated = asyncio.run(task_service.update_task(created.id, completed=True))

    assert updated.title == "Read a book"
    assert updated.completed is True
    assert updated.updated_at >= created.updated_at


def test_update_missing_todo_raises_not_found(
    task_service: TaskService, task_store: InMemoryTaskStore
) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(task_service.update_task("missing", title="X"))
    assert task_store.writes == 0


def test_delete_missing_todo_twice_is_not_an_error(
    task_service: TaskService, task_store: InMemoryTaskStore
) -> None:
    first = asyncio.run(task_service.delete_task("missing"))
    second = asyncio.run(task_service.delete_task("missing"))

    assert first.success is False
    assert second.success is False
    assert task_store.writes == 0


def test_list_filter_matches_completion_exactly(task_service: TaskService) -> None:
    async def seed() -> None:
        await task_service.create_task("Buy groceries")
        await task_service.create_task("Walk the dog", completed=True)
        await task_service.create_task("Read a book")
        await task_service.create_task("Pay bills", completed=True)

    asyncio.run(seed())

    done = asyncio.run(task_service.list_tasks(completed=True))
    pending = asyncio.run(task_service.list_tasks(completed=False))
    everything = asyncio.run(task_service.list_tasks())

    assert [task.title for task in done] == ["Walk the dog", "Pay bills"]
    assert [task.title for task in pending] == ["Buy groceries", "Read a book"]
    assert [task.title for task in everything] == [
        "Buy groceries",
        "Walk the dog",
        "Read a book",
        "Pay bills",
    ]


def test_concurrent_mutations_do_not_lose_updates() -> None:
    store = InMemoryTaskStore(yield_between=True)
    service = TaskService(store)

    async def create_many() -> None:
        await asyncio.gather(*(service.create_task(f"Task {i}") for i in range(10)))

    asyncio.run(create_many())

    assert len(store.tasks) == 10


def test_concurrent_update_and_delete_are_serialized() -> None:
    store = InMemoryTaskStore(yield_between=True)
    service = TaskService(store)

    async def scenario() -> None:
        keep = await service.create_task("Keep")
        drop = await service.create_task("Drop")
        await asyncio.gather(
            service.update_task(keep.id, completed=True),
            service.delete_task(drop.id),
        )

    asyncio.run(scenario())

    assert [(task.title, task.completed) for task in store.tasks] == [("Keep", True)]


def test_summarize_all_todos(task_service: TaskService) -> None:
    async def seed() -> None:
        for title, completed in (
            ("Buy groceries", False),
            ("Walk the dog", True),
            ("Read a book", False),
            ("Pay bills", True),
        ):
            await task_service.create_task(title, completed=completed)

    asyncio.run(seed())

    summary = asyncio.run(task_service.summarize())

    assert summary.total == 4
    assert summary.completed == 2
    assert summary.incomplete == 2
    assert summary.text == (
        "You have a total of 4 todo(s). 2 are completed and 2 are incomplete. "
        "Here are a few: Buy groceries, Walk the dog, Read a book...."
    )


def test_summarize_completed_todos(task_service: TaskService) -> None:
    asyncio.run(task_service.create_task("Pay bills", completed=True))
    asyncio.run(task_service.create_task("Call mom"))

    summary = asyncio.run(task_service.summarize(completed=True))

    assert summary.text == "You have 1 completed todo(s). These include: Pay bills."
    assert summary.to_payload()["todosCount"] == 1


def test_summarize_empty_list(task_service: TaskService) -> None:
    assert asyncio.run(task_service.summarize()).text == "You currently have no todos."
    assert (
        asyncio.run(task_service.summarize(completed=False)).text
        == "You currently have no incomplete todos."
    )
