"""Persistence layer: the external task store behind a repository protocol."""

from __future__ import annotations

import os
from typing import Callable, Optional

from ..config import load_config
from .inmemory import InMemoryTaskRepository
from .models import BatchResult, TaskInput, TaskRecord
from .repository import TaskRepository
from .sqlite import SQLiteTaskRepository

_BACKENDS: dict[str, Callable[[str], TaskRepository]] = {
    "sqlite://": SQLiteTaskRepository,
}

# process-wide store shared by the CLI commands
_repository_instance: TaskRepository | None = None


def open_repository(database_url: str) -> TaskRepository:
    """Build the task store named by ``database_url``.

    An empty URL means the in-memory store.
    """
    if not database_url:
        return InMemoryTaskRepository()
    for scheme, backend in _BACKENDS.items():
        if database_url.startswith(scheme):
            return backend(database_url[len(scheme):])
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(database_url: Optional[str] = None) -> TaskRepository:
    """Return the task store for this process.

    Without an explicit URL the store opened earlier is reused. Otherwise the
    URL comes from ``TASKCHAIN_DATABASE_URL``, ``DATABASE_URL`` or the
    ``database_url`` config key, in that order.
    """
    global _repository_instance
    if database_url is None and _repository_instance is not None:
        return _repository_instance

    url = (
        database_url
        or os.getenv("TASKCHAIN_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or load_config().database_url
        or ""
    )
    _repository_instance = open_repository(url)
    return _repository_instance


__all__ = [
    "BatchResult",
    "TaskInput",
    "TaskRecord",
    "TaskRepository",
    "InMemoryTaskRepository",
    "SQLiteTaskRepository",
    "get_repository",
    "open_repository",
]
