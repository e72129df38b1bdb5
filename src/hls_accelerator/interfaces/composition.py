"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

import httpx
import structlog
from fastapi import FastAPI

from hls_accelerator.application.use_cases import PlaylistProxyService, TaskOrchestrator
from hls_accelerator.infrastructure.background import BackgroundRunner
from hls_accelerator.infrastructure.cache import FileCacheStore
from hls_accelerator.infrastructure.fetch_engine import Aria2Client
from hls_accelerator.infrastructure.hls.upstream import UpstreamClient
from hls_accelerator.infrastructure.metrics import ProxyMetrics
from hls_accelerator.infrastructure.persistence import SqliteTaskStore
from hls_accelerator.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: Initialize and cleanup all resources (DI Composition Root).

    Order matters:
        1. Metrics + background runner (used by the services)
        2. Cache directory and task store
        3. HTTP client, upstream access and fetch engine
        4. Orchestrator, then the playlist service on top of it
    """
    state = cast(AppState, app.state)
    config = state.config

    # 1) Metrics and detached-work tracking
    state.metrics = ProxyMetrics()
    state.runner = BackgroundRunner()

    # 2) Cache + persistence
    config.cache_dir.mkdir(parents=True, exist_ok=True)
    state.cache_store = FileCacheStore(
        root=config.cache_dir,
        incomplete_suffix=config.cache_incomplete_suffix,
    )
    task_store = SqliteTaskStore(config.database_path)
    await task_store.initialize()
    state.task_store = task_store
    log.info(
        "storage_initialized",
        cache_dir=str(config.cache_dir),
        database=str(config.database_path),
    )

    # 3) HTTP client (shared by upstream fetches and engine RPC)
    state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.http_timeout_seconds),
        follow_redirects=config.http_follow_redirects,
    )
    forwarded = config.forwarded_headers()
    state.upstream = UpstreamClient(
        state.http_client,
        forwarded,
        max_concurrent=config.http_max_concurrent_upstream,
        timeout_seconds=config.http_timeout_seconds,
        follow_redirects=config.http_follow_redirects,
    )
    state.fetch_engine = Aria2Client(
        state.http_client,
        rpc_url=config.aria2_rpc_url,
        secret=config.aria2_secret,
        timeout_seconds=config.aria2_timeout_seconds,
    )
    log.info("http_client_initialized", aria2_rpc_url=config.aria2_rpc_url)

    # 4) Application services
    state.orchestrator = TaskOrchestrator(
        state.task_store,
        state.cache_store,
        state.fetch_engine,
        state.runner,
        headers=forwarded,
        metrics=state.metrics,
    )
    state.playlist_service = PlaylistProxyService(
        state.orchestrator,
        state.upstream,
        state.task_store,
        state.cache_store,
        state.runner,
        public_proxy_base=config.proxy_public_base_url or "",
        metrics=state.metrics,
    )

    log.info("app_startup_complete", port=config.proxy_port)

    try:
        yield
    finally:
        cancelled = await state.runner.drain(timeout=config.background_drain_timeout_seconds)
        log.info("background_drained", cancelled=cancelled)

        await state.http_client.aclose()
        log.info("http_client_closed")

        await task_store.aclose()

        log.info("app_shutdown_complete")
