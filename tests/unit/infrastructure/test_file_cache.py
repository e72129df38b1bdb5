"""Tests for FileCacheStore."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from hls_accelerator.domain.entities import CacheCleanupError, InvalidCacheKeyError
from hls_accelerator.infrastructure.cache import FileCacheStore


class TestPaths:
    def test_task_dir_under_root(self, file_cache: FileCacheStore, cache_root: Path) -> None:
        assert file_cache.task_dir("abc") == cache_root / "abc"

    def test_file_path(self, file_cache: FileCacheStore, cache_root: Path) -> None:
        assert file_cache.file_path("abc", "00001.ts") == cache_root / "abc" / "00001.ts"

    def test_ensure_task_dir_is_idempotent(self, file_cache: FileCacheStore) -> None:
        first = file_cache.ensure_task_dir("abc")
        second = file_cache.ensure_task_dir("abc")
        assert first == second
        assert first.is_dir()

    @pytest.mark.parametrize("bad", ["", ".", "..", "a/b", "a\\b", "x\x00y"])
    def test_invalid_task_id_rejected(self, file_cache: FileCacheStore, bad: str) -> None:
        with pytest.raises(InvalidCacheKeyError):
            file_cache.task_dir(bad)

    @pytest.mark.parametrize("bad", ["", "..", "../etc/passwd", "sub/00001.ts"])
    def test_invalid_filename_rejected(self, file_cache: FileCacheStore, bad: str) -> None:
        with pytest.raises(InvalidCacheKeyError):
            file_cache.file_path("abc", bad)

    def test_invalid_key_is_value_error(self, file_cache: FileCacheStore) -> None:
        with pytest.raises(ValueError):
            file_cache.file_path("..", "00001.ts")


class TestCompleteness:
    def test_missing_file_not_complete(self, file_cache: FileCacheStore) -> None:
        assert file_cache.exists("abc", "00001.ts") is False
        assert file_cache.is_complete("abc", "00001.ts") is False

    def test_file_without_marker_is_complete(self, file_cache: FileCacheStore) -> None:
        d = file_cache.ensure_task_dir("abc")
        (d / "00001.ts").write_bytes(b"data")
        assert file_cache.is_complete("abc", "00001.ts") is True

    def test_marker_means_incomplete(self, file_cache: FileCacheStore) -> None:
        d = file_cache.ensure_task_dir("abc")
        (d / "00001.ts").write_bytes(b"partial")
        (d / "00001.ts.aria2").write_bytes(b"")
        assert file_cache.exists("abc", "00001.ts") is True
        assert file_cache.is_complete("abc", "00001.ts") is False

    def test_marker_alone_not_complete(self, file_cache: FileCacheStore) -> None:
        d = file_cache.ensure_task_dir("abc")
        (d / "00001.ts.aria2").write_bytes(b"")
        assert file_cache.is_complete("abc", "00001.ts") is False

    def test_directory_with_segment_name_not_complete(self, file_cache: FileCacheStore) -> None:
        d = file_cache.ensure_task_dir("abc")
        (d / "00001.ts").mkdir()
        assert file_cache.is_complete("abc", "00001.ts") is False

    def test_custom_marker_suffix(self, cache_root: Path) -> None:
        cache = FileCacheStore(cache_root, incomplete_suffix=".part")
        d = cache.ensure_task_dir("abc")
        (d / "00001.ts").write_bytes(b"data")
        (d / "00001.ts.aria2").write_bytes(b"")
        assert cache.is_complete("abc", "00001.ts") is True
        (d / "00001.ts.part").write_bytes(b"")
        assert cache.is_complete("abc", "00001.ts") is False


class TestRemoveTaskDir:
    def test_removes_recursively(self, file_cache: FileCacheStore) -> None:
        d = file_cache.ensure_task_dir("abc")
        (d / "00001.ts").write_bytes(b"data")
        (d / "nested").mkdir()
        (d / "nested" / "x").write_bytes(b"x")

        file_cache.remove_task_dir("abc")
        assert not d.exists()

    def test_missing_dir_is_success(self, file_cache: FileCacheStore) -> None:
        file_cache.remove_task_dir("never-created")

    def test_other_tasks_untouched(self, file_cache: FileCacheStore) -> None:
        file_cache.ensure_task_dir("abc")
        other = file_cache.ensure_task_dir("def")
        file_cache.remove_task_dir("abc")
        assert other.is_dir()

    def test_rmtree_failure_raises_cleanup_error(
        self, file_cache: FileCacheStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        d = file_cache.ensure_task_dir("abc")

        def _fail(path, *args, **kwargs):
            raise PermissionError("denied")

        monkeypatch.setattr(shutil, "rmtree", _fail)
        with pytest.raises(CacheCleanupError):
            file_cache.remove_task_dir("abc")
        assert d.is_dir()

    def test_directory_left_behind_raises(
        self, file_cache: FileCacheStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        file_cache.ensure_task_dir("abc")
        monkeypatch.setattr(shutil, "rmtree", lambda path, *a, **kw: None)
        with pytest.raises(CacheCleanupError, match="still exists"):
            file_cache.remove_task_dir("abc")
