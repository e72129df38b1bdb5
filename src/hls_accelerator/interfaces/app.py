"""FastAPI application factory (create_app)."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from starlette.responses import Response

from hls_accelerator.infrastructure.config import AppConfig
from hls_accelerator.interfaces.app_state import AppState
from hls_accelerator.interfaces.composition import lifespan

log = structlog.get_logger(__name__)


def create_app(config: AppConfig) -> FastAPI:
    """Create FastAPI app; configuration ONLY, no resource initialization.

    Resources (HTTP client, task store, fetch engine) are created in lifespan().
    """
    app = FastAPI(
        title="HLS Accelerator",
        description="Caching HLS proxy with background segment prefetch",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config

    from hls_accelerator.interfaces.api.proxy.router import router as proxy_router
    from hls_accelerator.interfaces.api.stats.router import router as stats_router
    from hls_accelerator.interfaces.api.tasks.router import router as tasks_router

    app.include_router(proxy_router)
    app.include_router(tasks_router, prefix="/api/v1")
    app.include_router(stats_router, prefix="/api/v1")

    @app.get("/api/v1/healthz")
    async def healthz() -> dict[str, str | int]:
        """Liveness probe; returns 200 as long as the process is running."""
        runner = getattr(app.state, "runner", None)
        return {
            "status": "ok",
            "background_pending": runner.pending if runner is not None else 0,
        }

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ):
        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code if response is not None else 500,
                duration_ms=round(duration_ms, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app
