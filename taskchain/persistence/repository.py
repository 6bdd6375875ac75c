"""Repository abstraction over the external task store."""

from __future__ import annotations

from typing import Protocol

from .models import BatchResult, TaskInput, TaskRecord


class TaskRepository(Protocol):
    """Protocol for task store backends.

    The engine assumes no transactions. A record returned by ``create_one``
    or ``create_batch`` must be visible to the next ``query_by_entity`` call.
    """

    async def query_by_entity(
        self, entity_id: str, subject_prefix: str
    ) -> list[TaskRecord]:
        """Return the entity's tasks whose subject starts with ``subject_prefix``."""

    async def create_one(self, task: TaskInput) -> TaskRecord:
        """Create a single task."""

    async def create_batch(self, tasks: list[TaskInput]) -> BatchResult:
        """Create several tasks, reporting failures per item."""

    async def query_open(self, subject_prefix: str, limit: int) -> list[TaskRecord]:
        """Return tasks not yet completed across all entities, by due date."""

    async def set_status(self, record_id: str, status: str) -> TaskRecord | None:
        """Update the status of a task."""
