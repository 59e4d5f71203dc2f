"""JSON file task store adapter."""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from todo_mcp.domain.tasks import TaskRecord

logger = logging.getLogger(__name__)


@dataclass
class JsonFileTaskStore:
    """Task store persisted as a single ``{"todos": [...]}`` JSON document.

    Every write replaces the whole file. The file is written to a sibling
    temp file first and moved into place so readers never see a partial
    document.
    """

    path: Path

    @classmethod
    def create(cls, path: str) -> "JsonFileTaskStore":
        """Create a store for ``path``, writing an empty document if missing."""
        store = cls(path=Path(path))
        store.ensure_exists()
        return store

    def ensure_exists(self) -> None:
        """Write the default document when the file does not exist yet."""
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write_document({"todos": []})
        logger.info("Initialized task store at %s", self.path)

    async def read_all(self) -> list[TaskRecord]:
        """Read every record from disk."""
        document = await asyncio.to_thread(self._read_document)
        raw_todos = document.get("todos") or []
        if not isinstance(raw_todos, list):
            return []
        return [
            TaskRecord.from_payload(item) for item in raw_todos if isinstance(item, dict)
        ]

    async def write_all(self, tasks: list[TaskRecord]) -> None:
        """Overwrite the file with ``tasks``."""
        document = {"todos": [task.to_payload() for task in tasks]}
        await asyncio.to_thread(self._write_document, document)

    def _read_document(self) -> dict[str, object]:
        if not self.path.exists():
            return {"todos": []}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {"todos": []}
        document = json.loads(text)
        return document if isinstance(document, dict) else {"todos": []}

    def _write_document(self, document: dict[str, object]) -> None:
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
