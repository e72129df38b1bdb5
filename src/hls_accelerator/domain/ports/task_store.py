"""Port for task and task item persistence."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from hls_accelerator.domain.entities.task import Task, TaskItem, TaskStatus


@runtime_checkable
class TaskStorePort(Protocol):
    """Async CRUD over tasks and their fetched items.

    Two idempotency contracts:
      - ``create_task`` raises ``TaskAlreadyExistsError`` when the id is taken.
      - ``create_task_item`` silently ignores a duplicate (task_id, filename).
    """

    async def create_task(self, task: Task) -> None: ...

    async def get_task(self, task_id: str) -> Task | None: ...

    async def check_exists(self, task_id: str) -> tuple[bool, TaskStatus | None]: ...

    async def get_proxied_content(self, task_id: str) -> str | None: ...

    async def list_tasks(self) -> list[Task]: ...

    async def update_status(self, task_id: str, status: TaskStatus) -> None: ...

    async def update_proxied_content(self, task_id: str, content: str) -> None: ...

    async def update_total_segments(self, task_id: str, total_segments: int) -> None: ...

    async def delete_task(self, task_id: str) -> None: ...

    async def create_task_item(self, item: TaskItem) -> bool: ...

    async def items_of(self, task_id: str) -> list[TaskItem]: ...

    async def job_handles_of(self, task_id: str) -> list[str]: ...

    async def delete_items_of(self, task_id: str) -> int: ...
