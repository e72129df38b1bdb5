"""Runtime counters endpoint."""

from __future__ import annotations

from typing import Any, cast

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from hls_accelerator.interfaces.app_state import AppState

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/metrics")
async def metrics(request: Request) -> JSONResponse:
    """Return in-memory proxy counters and the background job backlog."""
    state = cast(AppState, request.app.state)

    data: dict[str, Any] = {}

    m = getattr(state, "metrics", None)
    if m is not None:
        data.update(m.snapshot())

    runner = getattr(state, "runner", None)
    if runner is not None:
        data["background"] = {"pending": runner.pending}

    return JSONResponse(content=data)
