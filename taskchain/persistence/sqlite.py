"""SQLite implementation of the task repository."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from ..constants import COMPLETED_STATUS, MAX_BATCH_SIZE
from .models import BatchResult, TaskInput, TaskRecord
from .repository import TaskRepository

_COLUMNS = (
    "id, subject, entity_id, entity_name, status, priority, due_date, "
    "description, created_at, idempotency_key"
)


class SQLiteTaskRepository(TaskRepository):
    """Persist tasks using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                subject TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                entity_name TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL,
                priority TEXT NOT NULL,
                due_date TEXT,
                description TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                idempotency_key TEXT UNIQUE
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS ix_tasks_entity ON tasks (entity_id)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.lastrowid

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _to_record(row: sqlite3.Row) -> TaskRecord:
        return TaskRecord(
            id=str(row["id"]),
            subject=row["subject"],
            entity_id=row["entity_id"],
            entity_name=row["entity_name"],
            status=row["status"],
            priority=row["priority"],
            due_date=date.fromisoformat(row["due_date"]) if row["due_date"] else None,
            description=row["description"],
            created_at=datetime.fromisoformat(row["created_at"]),
            idempotency_key=row["idempotency_key"],
        )

    def _insert(self, task: TaskInput) -> TaskRecord:
        if task.idempotency_key:
            existing = self._fetchone(
                f"SELECT {_COLUMNS} FROM tasks WHERE idempotency_key = ?",
                task.idempotency_key,
            )
            if existing:
                return self._to_record(existing)
        row_id = self._execute(
            """
            INSERT INTO tasks (subject, entity_id, entity_name, status, priority,
                               due_date, description, created_at, idempotency_key)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            task.subject,
            task.entity_id,
            task.entity_name,
            task.status,
            task.priority,
            task.due_date.isoformat() if task.due_date else None,
            task.description,
            datetime.now(timezone.utc).isoformat(),
            task.idempotency_key,
        )
        row = self._fetchone(f"SELECT {_COLUMNS} FROM tasks WHERE id = ?", row_id)
        return self._to_record(row)

    def _insert_chunk(self, tasks: list[TaskInput]) -> BatchResult:
        result = BatchResult()
        for task in tasks:
            try:
                result.records.append(self._insert(task))
            except sqlite3.Error as e:
                result.errors.append(f"{task.subject}: {e}")
        return result

    # ------------------------------------------------------------------
    # Repository API
    async def query_by_entity(
        self, entity_id: str, subject_prefix: str
    ) -> list[TaskRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_COLUMNS} FROM tasks"
            " WHERE entity_id = ? AND substr(subject, 1, ?) = ? ORDER BY id",
            entity_id,
            len(subject_prefix),
            subject_prefix,
        )
        return [self._to_record(r) for r in rows]

    async def create_one(self, task: TaskInput) -> TaskRecord:
        return await asyncio.to_thread(self._insert, task)

    async def create_batch(self, tasks: list[TaskInput]) -> BatchResult:
        result = BatchResult()
        for start in range(0, len(tasks), MAX_BATCH_SIZE):
            chunk = await asyncio.to_thread(
                self._insert_chunk, tasks[start : start + MAX_BATCH_SIZE]
            )
            result.records.extend(chunk.records)
            result.errors.extend(chunk.errors)
        return result

    async def query_open(self, subject_prefix: str, limit: int) -> list[TaskRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"""
            SELECT {_COLUMNS} FROM tasks
            WHERE substr(subject, 1, ?) = ? AND status != ?
            ORDER BY due_date IS NULL, due_date, id
            LIMIT ?
            """,
            len(subject_prefix),
            subject_prefix,
            COMPLETED_STATUS,
            limit,
        )
        return [self._to_record(r) for r in rows]

    async def set_status(self, record_id: str, status: str) -> TaskRecord | None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE tasks SET status = ? WHERE id = ?",
            status,
            record_id,
        )
        row = await asyncio.to_thread(
            self._fetchone, f"SELECT {_COLUMNS} FROM tasks WHERE id = ?", record_id
        )
        return self._to_record(row) if row else None
