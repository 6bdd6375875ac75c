"""In-memory implementation of the task repository."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable, Dict, Optional

from ..constants import MAX_BATCH_SIZE
from .models import BatchResult, TaskInput, TaskRecord
from .repository import TaskRepository


class InMemoryTaskRepository(TaskRepository):
    """Store tasks in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._tasks: Dict[str, TaskRecord] = {}
        self._keys: Dict[str, str] = {}
        self._next_id = 0
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    async def query_by_entity(
        self, entity_id: str, subject_prefix: str
    ) -> list[TaskRecord]:
        return [
            task
            for task in self._tasks.values()
            if task.entity_id == entity_id and task.subject.startswith(subject_prefix)
        ]

    async def create_one(self, task: TaskInput) -> TaskRecord:
        if task.idempotency_key and task.idempotency_key in self._keys:
            return self._tasks[self._keys[task.idempotency_key]]
        self._next_id += 1
        record = TaskRecord(
            id=f"T{self._next_id:06d}",
            created_at=self._clock(),
            **task.model_dump(),
        )
        self._tasks[record.id] = record
        if task.idempotency_key:
            self._keys[task.idempotency_key] = record.id
        return record

    async def create_batch(self, tasks: list[TaskInput]) -> BatchResult:
        result = BatchResult()
        for start in range(0, len(tasks), MAX_BATCH_SIZE):
            for task in tasks[start : start + MAX_BATCH_SIZE]:
                try:
                    result.records.append(await self.create_one(task))
                except Exception as e:
                    result.errors.append(f"{task.subject}: {e}")
        return result

    async def query_open(self, subject_prefix: str, limit: int) -> list[TaskRecord]:
        open_tasks = [
            task
            for task in self._tasks.values()
            if task.subject.startswith(subject_prefix) and not task.is_completed
        ]
        open_tasks.sort(key=lambda t: (t.due_date is None, t.due_date or date.min))
        return open_tasks[:limit]

    async def set_status(self, record_id: str, status: str) -> TaskRecord | None:
        task = self._tasks.get(record_id)
        if task is None:
            return None
        updated = task.model_copy(update={"status": status})
        self._tasks[record_id] = updated
        return updated

    async def list_tasks(self) -> list[TaskRecord]:
        return list(self._tasks.values())
