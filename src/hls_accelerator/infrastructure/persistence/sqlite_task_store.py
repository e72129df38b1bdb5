"""Task repository backed by SQLite (stdlib ``sqlite3``).

Uniqueness lives in the schema, not in process memory: the primary key
on ``tasks.id`` makes a second create fail, and the unique
``(task_id, filename)`` pair lets duplicate item inserts be ignored.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

import structlog

from hls_accelerator.domain.entities.task import (
    Task,
    TaskAlreadyExistsError,
    TaskItem,
    TaskNotFoundError,
    TaskStatus,
)

log = structlog.get_logger(__name__)

T = TypeVar("T")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        original_url TEXT NOT NULL,
        total_segments INTEGER NOT NULL DEFAULT 0,
        created_time TEXT NOT NULL,
        status TEXT NOT NULL,
        proxied_content TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_item (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id TEXT NOT NULL,
        filename TEXT NOT NULL,
        job_handle TEXT NOT NULL,
        url TEXT NOT NULL,
        created_time TEXT NOT NULL,
        UNIQUE (task_id, filename)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_task_item_task_id ON task_item (task_id)",
)

_TASK_COLUMNS = "id, original_url, total_segments, created_time, status"


def _to_db_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_db_time(raw: str) -> datetime:
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _row_to_task(row: sqlite3.Row, *, with_content: bool = False) -> Task:
    return Task(
        id=row["id"],
        original_url=row["original_url"],
        total_segments=int(row["total_segments"]),
        status=TaskStatus(row["status"]),
        created_time=_from_db_time(row["created_time"]),
        proxied_content=row["proxied_content"] if with_content else None,
    )


def _row_to_item(row: sqlite3.Row) -> TaskItem:
    return TaskItem(
        task_id=row["task_id"],
        filename=row["filename"],
        job_handle=row["job_handle"],
        url=row["url"],
        created_time=_from_db_time(row["created_time"]),
    )


class SqliteTaskStore:
    """Async TaskStorePort over a SQLite file.

    - Every operation opens its own connection inside ``asyncio.to_thread``
      (sqlite3 connections are not shared across threads).
    - WAL journal plus a busy timeout let concurrent writers queue instead
      of failing with "database is locked".
    - A semaphore caps parallel disk operations.

    Args:
        db_path: Database file; parent directories are created on open.
        busy_timeout_seconds: How long a writer waits for the lock.
        max_concurrent: Max parallel database operations.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        busy_timeout_seconds: float = 5.0,
        max_concurrent: int = 10,
    ) -> None:
        self.db_path = Path(db_path)
        self._busy_timeout = busy_timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._initialized = False

    # --- Lifecycle ---
    async def __aenter__(self) -> SqliteTaskStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def initialize(self) -> None:
        if self._initialized:
            return
        await asyncio.to_thread(self._init_schema)
        self._initialized = True
        log.info("task_store_opened", path=str(self.db_path))

    async def aclose(self) -> None:
        # Connections are per operation; nothing is held open.
        if self._initialized:
            self._initialized = False
            log.info("task_store_closed", path=str(self.db_path))

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self._busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout * 1000)}")
        return conn

    def _init_schema(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn, conn:
            conn.execute("PRAGMA journal_mode = WAL")
            for statement in _SCHEMA:
                conn.execute(statement)

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        if not self._initialized:
            raise RuntimeError(
                "Task store not initialized. Use 'async with store:' or await store.initialize()"
            )

        def _call() -> T:
            with closing(self._connect()) as conn, conn:
                return fn(conn)

        async with self._semaphore:
            return await asyncio.to_thread(_call)

    # --- Tasks ---
    async def create_task(self, task: Task) -> None:
        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO tasks (id, original_url, total_segments, created_time, status, "
                "proxied_content) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    task.id,
                    task.original_url,
                    task.total_segments,
                    _to_db_time(task.created_time),
                    task.status.value,
                    task.proxied_content,
                ),
            )

        try:
            await self._run(_insert)
        except sqlite3.IntegrityError as exc:
            raise TaskAlreadyExistsError(task.id) from exc
        log.info("task_created", task_id=task.id, total_segments=task.total_segments)

    async def get_task(self, task_id: str) -> Task | None:
        def _select(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute(
                f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,)
            ).fetchone()

        row = await self._run(_select)
        return _row_to_task(row) if row is not None else None

    async def check_exists(self, task_id: str) -> tuple[bool, TaskStatus | None]:
        def _select(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute("SELECT status FROM tasks WHERE id = ?", (task_id,)).fetchone()

        row = await self._run(_select)
        if row is None:
            return False, None
        return True, TaskStatus(row["status"])

    async def get_proxied_content(self, task_id: str) -> str | None:
        def _select(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute(
                "SELECT proxied_content FROM tasks WHERE id = ?", (task_id,)
            ).fetchone()

        row = await self._run(_select)
        if row is None:
            return None
        return row["proxied_content"] or None

    async def list_tasks(self) -> list[Task]:
        def _select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                f"SELECT {_TASK_COLUMNS} FROM tasks ORDER BY created_time DESC, rowid DESC"
            ).fetchall()

        return [_row_to_task(row) for row in await self._run(_select)]

    async def _update(self, task_id: str, sql: str, params: tuple[Any, ...]) -> None:
        def _exec(conn: sqlite3.Connection) -> int:
            return conn.execute(sql, params).rowcount

        if await self._run(_exec) == 0:
            raise TaskNotFoundError(task_id)

    async def update_status(self, task_id: str, status: TaskStatus) -> None:
        await self._update(
            task_id, "UPDATE tasks SET status = ? WHERE id = ?", (status.value, task_id)
        )
        log.info("task_status_updated", task_id=task_id, status=status.value)

    async def update_proxied_content(self, task_id: str, content: str) -> None:
        await self._update(
            task_id, "UPDATE tasks SET proxied_content = ? WHERE id = ?", (content, task_id)
        )
        log.debug("task_content_updated", task_id=task_id, size=len(content))

    async def update_total_segments(self, task_id: str, total_segments: int) -> None:
        await self._update(
            task_id,
            "UPDATE tasks SET total_segments = ? WHERE id = ?",
            (total_segments, task_id),
        )

    async def delete_task(self, task_id: str) -> None:
        def _delete(conn: sqlite3.Connection) -> int:
            return conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,)).rowcount

        deleted = await self._run(_delete)
        log.info("task_row_deleted", task_id=task_id, deleted=bool(deleted))

    # --- Task items ---
    async def create_task_item(self, item: TaskItem) -> bool:
        """Insert the item; False when (task_id, filename) was already registered."""

        def _insert(conn: sqlite3.Connection) -> int:
            return conn.execute(
                "INSERT OR IGNORE INTO task_item (task_id, filename, job_handle, url, "
                "created_time) VALUES (?, ?, ?, ?, ?)",
                (
                    item.task_id,
                    item.filename,
                    item.job_handle,
                    item.url,
                    _to_db_time(item.created_time),
                ),
            ).rowcount

        inserted = bool(await self._run(_insert))
        if not inserted:
            log.debug("task_item_duplicate", task_id=item.task_id, filename=item.filename)
        return inserted

    async def items_of(self, task_id: str) -> list[TaskItem]:
        def _select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                "SELECT task_id, filename, job_handle, url, created_time FROM task_item "
                "WHERE task_id = ? ORDER BY id",
                (task_id,),
            ).fetchall()

        return [_row_to_item(row) for row in await self._run(_select)]

    async def job_handles_of(self, task_id: str) -> list[str]:
        def _select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                "SELECT job_handle FROM task_item WHERE task_id = ? ORDER BY id", (task_id,)
            ).fetchall()

        return [row["job_handle"] for row in await self._run(_select)]

    async def delete_items_of(self, task_id: str) -> int:
        def _delete(conn: sqlite3.Connection) -> int:
            return conn.execute("DELETE FROM task_item WHERE task_id = ?", (task_id,)).rowcount

        deleted = await self._run(_delete)
        log.info("task_items_deleted", task_id=task_id, count=deleted)
        return deleted
