"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from hls_accelerator.infrastructure.config import AppConfig

if TYPE_CHECKING:
    from hls_accelerator.application.use_cases import (
        PlaylistProxyService,
        TaskOrchestrator,
    )
    from hls_accelerator.domain.ports import (
        CacheStorePort,
        FetchEnginePort,
        TaskStorePort,
        UpstreamPort,
    )
    from hls_accelerator.infrastructure.background import BackgroundRunner
    from hls_accelerator.infrastructure.metrics import ProxyMetrics


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure
    http_client: httpx.AsyncClient
    upstream: UpstreamPort
    runner: BackgroundRunner

    # Domain Ports
    task_store: TaskStorePort
    cache_store: CacheStorePort
    fetch_engine: FetchEnginePort

    # Application Services
    orchestrator: TaskOrchestrator
    playlist_service: PlaylistProxyService

    # Metrics (zero-impact in-memory counters)
    metrics: ProxyMetrics
