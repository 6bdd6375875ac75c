"""Data models exchanged with the task store."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..constants import COMPLETED_STATUS


class TaskInput(BaseModel):
    """Task to be created in the external store."""

    subject: str
    entity_id: str
    entity_name: str = ""
    status: str = "Not Started"
    priority: str = "Normal"
    due_date: Optional[date] = None
    description: str = ""
    idempotency_key: Optional[str] = None


class TaskRecord(BaseModel):
    """Task as stored by the external store."""

    id: str
    subject: str
    entity_id: str
    entity_name: str = ""
    status: str = "Not Started"
    priority: str = "Normal"
    due_date: Optional[date] = None
    description: str = ""
    created_at: datetime
    idempotency_key: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == COMPLETED_STATUS


class BatchResult(BaseModel):
    """Partial-success outcome of a batch create."""

    records: list[TaskRecord] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
