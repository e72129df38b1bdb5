"""Filesystem segment cache: one directory per task under a common root."""

from __future__ import annotations

import shutil
from pathlib import Path

import structlog

from hls_accelerator.domain.entities.task import CacheCleanupError, InvalidCacheKeyError

log = structlog.get_logger(__name__)


def _check_component(value: str, what: str) -> str:
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise InvalidCacheKeyError(f"Invalid {what}: {value!r}")
    return value


class FileCacheStore:
    """Cache keyed by (task id, filename).

    A file is complete only when it exists and the fetch engine's sidecar
    marker (``<file><incomplete_suffix>``) does not.

    Args:
        root: Directory holding the per-task directories.
        incomplete_suffix: Suffix of the fetch engine's in-progress marker.
    """

    def __init__(self, root: str | Path, incomplete_suffix: str = ".aria2") -> None:
        self.root = Path(root)
        self.incomplete_suffix = incomplete_suffix

    def task_dir(self, task_id: str) -> Path:
        return self.root / _check_component(task_id, "task id")

    def ensure_task_dir(self, task_id: str) -> Path:
        path = self.task_dir(task_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def file_path(self, task_id: str, filename: str) -> Path:
        return self.task_dir(task_id) / _check_component(filename, "filename")

    def exists(self, task_id: str, filename: str) -> bool:
        return self.file_path(task_id, filename).is_file()

    def is_complete(self, task_id: str, filename: str) -> bool:
        path = self.file_path(task_id, filename)
        if not path.is_file():
            return False
        marker = path.with_name(path.name + self.incomplete_suffix)
        return not marker.exists()

    def remove_task_dir(self, task_id: str) -> None:
        """Recursively delete the task directory and verify it is gone.

        A directory that does not exist counts as removed.  Raises
        ``CacheCleanupError`` when anything is left behind.
        """
        path = self.task_dir(task_id)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            log.error("cache_dir_remove_failed", task_id=task_id, path=str(path), error=str(exc))
            raise CacheCleanupError(f"Failed to remove cache directory {path}: {exc}") from exc

        if path.exists():
            log.error("cache_dir_still_present", task_id=task_id, path=str(path))
            raise CacheCleanupError(f"Cache directory still exists after removal: {path}")

        log.info("cache_dir_removed", task_id=task_id, path=str(path))
