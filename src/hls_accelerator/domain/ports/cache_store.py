"""Port for the on-disk segment cache."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class CacheStorePort(Protocol):
    """Filesystem cache keyed by (task id, filename).

    A file is servable only when it exists AND the fetch engine's
    incomplete marker next to it is absent.
    """

    def task_dir(self, task_id: str) -> Path: ...

    def ensure_task_dir(self, task_id: str) -> Path: ...

    def file_path(self, task_id: str, filename: str) -> Path: ...

    def exists(self, task_id: str, filename: str) -> bool: ...

    def is_complete(self, task_id: str, filename: str) -> bool: ...

    def remove_task_dir(self, task_id: str) -> None: ...
