"""Administrative task API: list, add, stop and delete download tasks."""

from __future__ import annotations

from typing import cast

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from hls_accelerator.domain.entities import (
    CacheStorageError,
    InvalidCacheKeyError,
    InvalidSourceUrlError,
    TaskAlreadyExistsError,
    TaskNotFoundError,
    TaskStillDownloadingError,
)
from hls_accelerator.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


class AddTaskRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Source playlist URL (master or variant).")


@router.get("")
async def list_tasks(request: Request) -> JSONResponse:
    """All tasks, newest first, with downloaded segment counts."""
    state = cast(AppState, request.app.state)
    progress = await state.orchestrator.list_with_progress()
    return JSONResponse(content=[p.to_dict() for p in progress])


@router.post("", status_code=202)
async def add_task(body: AddTaskRequest, request: Request) -> JSONResponse:
    """Start downloading a playlist without a player.

    Returns 202 immediately; fetching, variant selection and dispatch run
    in the background.  For a master playlist the returned id is the
    master's fingerprint, the task itself is keyed by the chosen variant.
    """
    state = cast(AppState, request.app.state)
    url = body.url.strip()

    try:
        task_id = await state.playlist_service.check_can_add(url)
    except InvalidSourceUrlError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except TaskAlreadyExistsError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    state.runner.spawn(state.playlist_service.start_download(url), name=f"add:{task_id}")
    log.info("task_add_accepted", task_id=task_id, url=url)
    return JSONResponse(status_code=202, content={"id": task_id, "status": "accepted"})


@router.post("/{task_id}/stop")
async def stop_task(task_id: str, request: Request) -> JSONResponse:
    state = cast(AppState, request.app.state)
    try:
        await state.orchestrator.stop(task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return JSONResponse(content={"id": task_id, "status": "stopped"})


@router.delete("/{task_id}")
async def delete_task(task_id: str, request: Request) -> JSONResponse:
    """Delete a stopped or completed task with its files and records."""
    state = cast(AppState, request.app.state)
    try:
        await state.orchestrator.delete(task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except TaskStillDownloadingError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except InvalidCacheKeyError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except CacheStorageError as e:
        log.error("task_delete_cleanup_failed", task_id=task_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e)) from e
    return JSONResponse(content={"id": task_id, "status": "deleted"})
