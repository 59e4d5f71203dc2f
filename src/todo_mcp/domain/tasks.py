"""Domain models for todo items."""

from dataclasses import dataclass
from datetime import datetime

UNTITLED_TODO = "Untitled Todo"


@dataclass(frozen=True)
class TaskRecord:
    """Represents a todo item stored in the task store."""

    id: str
    title: str
    completed: bool
    created_at: datetime
    updated_at: datetime

    def to_payload(self) -> dict[str, object]:
        """Return the wire representation of the record."""
        return {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "TaskRecord":
        """Build a record from its stored representation."""
        created_at = datetime.fromisoformat(str(payload["createdAt"]))
        updated_raw = payload.get("updatedAt")
        updated_at = (
            datetime.fromisoformat(str(updated_raw)) if updated_raw else created_at
        )
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title") or UNTITLED_TODO),
            completed=bool(payload.get("completed", False)),
            created_at=created_at,
            updated_at=updated_at,
        )


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a delete operation."""

    success: bool
    deleted: TaskRecord | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"success": self.success}
        if self.deleted is not None:
            payload["deletedTodo"] = self.deleted.to_payload()
        return payload


@dataclass(frozen=True)
class TaskSummary:
    """Counts and human-readable summary of the todo list."""

    text: str
    total: int
    completed: int
    incomplete: int

    def to_payload(self) -> dict[str, object]:
        return {
            "summaryText": self.text,
            "todosCount": self.total,
            "completedCount": self.completed,
            "incompleteCount": self.incomplete,
        }
