"""Domain entities for download tasks.

Pure value objects with no framework dependencies and no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

# Segment cache files are named by their 1-based sequence number, zero-padded
# to at least five digits ("00042.ts", "123456.ts").
_SEGMENT_FILENAME_RE = re.compile(r"^\d{5,}(\.[^/]*)?$")


class TaskStatus(str, Enum):
    """Lifecycle state of a task.

    ``downloading -> completed`` happens automatically, ``* -> stopped``
    only on explicit request.  Neither terminal state is reverted by the
    player-driven flow.
    """

    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    STOPPED = "stopped"

    @property
    def is_active(self) -> bool:
        return self in (TaskStatus.DOWNLOADING, TaskStatus.COMPLETED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Task:
    """One download task per distinct source playlist."""

    id: str  # fingerprint of original_url
    original_url: str
    total_segments: int = 0
    status: TaskStatus = TaskStatus.DOWNLOADING
    created_time: datetime = field(default_factory=_utcnow)
    proxied_content: str | None = None  # large, never part of list views


@dataclass(frozen=True)
class TaskItem:
    """A file registered with the fetch engine on behalf of a task."""

    task_id: str
    filename: str
    job_handle: str
    url: str
    created_time: datetime = field(default_factory=_utcnow)

    @property
    def is_segment(self) -> bool:
        return is_segment_filename(self.filename)


@dataclass(frozen=True)
class TaskProgress:
    """A task as reported by the listing endpoint."""

    id: str
    original_url: str
    total_segments: int
    downloaded_segments: int
    created_time: datetime
    status: TaskStatus

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "original_url": self.original_url,
            "total_segments": self.total_segments,
            "downloaded_segments": self.downloaded_segments,
            "created_time": self.created_time.isoformat(),
            "status": self.status.value,
        }


def is_segment_filename(filename: str) -> bool:
    """True for media segment files, False for key and init files."""
    return bool(_SEGMENT_FILENAME_RE.match(filename))


class TaskError(Exception):
    """Base class for task lifecycle errors."""


class TaskNotFoundError(TaskError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class TaskAlreadyExistsError(TaskError):
    def __init__(self, task_id: str, status: TaskStatus | None = None) -> None:
        detail = f" with status: {status.value}" if status is not None else ""
        super().__init__(f"Task already exists{detail}")
        self.task_id = task_id
        self.status = status


class TaskStillDownloadingError(TaskError):
    def __init__(self, task_id: str) -> None:
        super().__init__("Cannot delete running task, please stop it first")
        self.task_id = task_id


class CacheStorageError(TaskError):
    """The cache directory of a task could not be created or removed."""


class CacheCleanupError(CacheStorageError):
    """The task's cache directory could not be removed."""


class InvalidCacheKeyError(ValueError):
    """A task id or filename that would escape the cache root."""
