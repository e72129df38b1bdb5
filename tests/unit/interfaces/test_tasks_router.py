"""Tests for the task administration router."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from hls_accelerator.domain.entities import (
    CacheCleanupError,
    InvalidSourceUrlError,
    TaskAlreadyExistsError,
    TaskNotFoundError,
    TaskProgress,
    TaskStatus,
    TaskStillDownloadingError,
)
from hls_accelerator.interfaces.api.tasks.router import router


def _make_app(
    *,
    orchestrator: MagicMock | None = None,
    service: MagicMock | None = None,
    runner: MagicMock | None = None,
) -> FastAPI:
    """Create a minimal FastAPI app with the tasks router."""
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    app.state.orchestrator = orchestrator or MagicMock()
    app.state.playlist_service = service or MagicMock()
    app.state.runner = runner or _runner()
    return app


def _runner() -> MagicMock:
    runner = MagicMock()
    # The coroutine is never scheduled; close it to avoid "never awaited".
    runner.spawn.side_effect = lambda coro, name=None: coro.close()
    return runner


class TestListTasks:
    def test_lists_progress(self) -> None:
        orchestrator = MagicMock()
        orchestrator.list_with_progress = AsyncMock(
            return_value=[
                TaskProgress(
                    id="abc",
                    original_url="https://o/v.m3u8",
                    total_segments=10,
                    downloaded_segments=4,
                    created_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
                    status=TaskStatus.DOWNLOADING,
                )
            ]
        )
        resp = TestClient(_make_app(orchestrator=orchestrator)).get("/api/v1/tasks")

        assert resp.status_code == 200
        assert resp.json() == [
            {
                "id": "abc",
                "original_url": "https://o/v.m3u8",
                "total_segments": 10,
                "downloaded_segments": 4,
                "created_time": "2024-01-01T00:00:00+00:00",
                "status": "downloading",
            }
        ]

    def test_empty(self) -> None:
        orchestrator = MagicMock()
        orchestrator.list_with_progress = AsyncMock(return_value=[])
        resp = TestClient(_make_app(orchestrator=orchestrator)).get("/api/v1/tasks")
        assert resp.json() == []


class TestAddTask:
    def test_accepted_and_spawned(self) -> None:
        service = MagicMock()
        service.check_can_add = AsyncMock(return_value="abc")
        service.start_download = AsyncMock()
        runner = _runner()

        resp = TestClient(_make_app(service=service, runner=runner)).post(
            "/api/v1/tasks", json={"url": "  https://o/v.m3u8 "}
        )

        assert resp.status_code == 202
        assert resp.json() == {"id": "abc", "status": "accepted"}
        service.check_can_add.assert_awaited_once_with("https://o/v.m3u8")
        service.start_download.assert_called_once_with("https://o/v.m3u8")
        assert runner.spawn.call_args.kwargs["name"] == "add:abc"

    def test_invalid_url(self) -> None:
        service = MagicMock()
        service.check_can_add = AsyncMock(side_effect=InvalidSourceUrlError("Invalid URL"))
        runner = _runner()
        resp = TestClient(_make_app(service=service, runner=runner)).post(
            "/api/v1/tasks", json={"url": "nope"}
        )
        assert resp.status_code == 400
        runner.spawn.assert_not_called()

    def test_conflict(self) -> None:
        service = MagicMock()
        service.check_can_add = AsyncMock(
            side_effect=TaskAlreadyExistsError("abc", TaskStatus.DOWNLOADING)
        )
        resp = TestClient(_make_app(service=service)).post(
            "/api/v1/tasks", json={"url": "https://o/v.m3u8"}
        )
        assert resp.status_code == 409
        assert "downloading" in resp.json()["detail"]

    def test_missing_body_field(self) -> None:
        resp = TestClient(_make_app()).post("/api/v1/tasks", json={})
        assert resp.status_code == 422


class TestStopTask:
    def test_stop(self) -> None:
        orchestrator = MagicMock()
        orchestrator.stop = AsyncMock()
        resp = TestClient(_make_app(orchestrator=orchestrator)).post("/api/v1/tasks/abc/stop")
        assert resp.status_code == 200
        assert resp.json()["status"] == "stopped"
        orchestrator.stop.assert_awaited_once_with("abc")

    def test_unknown(self) -> None:
        orchestrator = MagicMock()
        orchestrator.stop = AsyncMock(side_effect=TaskNotFoundError("abc"))
        resp = TestClient(_make_app(orchestrator=orchestrator)).post("/api/v1/tasks/abc/stop")
        assert resp.status_code == 404


class TestDeleteTask:
    def _delete(self, side_effect=None):
        orchestrator = MagicMock()
        orchestrator.delete = AsyncMock(side_effect=side_effect)
        return TestClient(_make_app(orchestrator=orchestrator)).delete("/api/v1/tasks/abc")

    def test_deleted(self) -> None:
        resp = self._delete()
        assert resp.status_code == 200
        assert resp.json() == {"id": "abc", "status": "deleted"}

    def test_unknown(self) -> None:
        assert self._delete(TaskNotFoundError("abc")).status_code == 404

    def test_still_downloading(self) -> None:
        resp = self._delete(TaskStillDownloadingError("abc"))
        assert resp.status_code == 409
        assert "stop it first" in resp.json()["detail"]

    def test_cleanup_failure(self) -> None:
        assert self._delete(CacheCleanupError("busy")).status_code == 500
