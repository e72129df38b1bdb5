"""Playlist and file proxying: cache-first serving with background registration."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import structlog

from hls_accelerator.application.use_cases.task_orchestrator import (
    TaskOrchestrator,
    Trigger,
    _Counters,
    _Spawner,
)
from hls_accelerator.domain.entities import (
    CacheStorageError,
    InvalidSourceUrlError,
    PlaylistParseError,
    TaskAlreadyExistsError,
    UpstreamFetchError,
)
from hls_accelerator.domain.ports import (
    CacheStorePort,
    TaskStorePort,
    UpstreamPort,
    UpstreamStreamPort,
)
from hls_accelerator.infrastructure.hls.fingerprint import fingerprint
from hls_accelerator.infrastructure.hls.rewriter import (
    parse_playlist,
    rewrite_master,
    rewrite_variant,
    select_best_variant,
)

log = structlog.get_logger(__name__)

# Master playlists pointing at further master playlists are followed at
# most this deep by the API add path.
MAX_MASTER_DEPTH = 3


def validate_source_url(url: str) -> str:
    """Return *url* if it is an absolute http(s) URL, else raise."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidSourceUrlError(f"Invalid URL: missing scheme or host: {url!r}")
    return url


@dataclass(frozen=True)
class CachedFile:
    path: Path


FileSource = Union[CachedFile, UpstreamStreamPort]


class PlaylistProxyService:
    """Serves rewritten playlists and cached or relayed segment/key files.

    Args:
        orchestrator: Task lifecycle (creation and dispatch).
        upstream: Origin access with the forwarded headers.
        store: Task store (proxied content lookups).
        cache: On-disk cache.
        runner: Detaches task registration from the HTTP response.
        public_proxy_base: Proxy base for rewrites not tied to a player request.
        metrics: Optional counters.
    """

    def __init__(
        self,
        orchestrator: TaskOrchestrator,
        upstream: UpstreamPort,
        store: TaskStorePort,
        cache: CacheStorePort,
        runner: _Spawner,
        *,
        public_proxy_base: str,
        metrics: _Counters | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.upstream = upstream
        self.store = store
        self.cache = cache
        self._runner = runner
        self.public_proxy_base = public_proxy_base.rstrip("/")
        self._metrics = metrics

    def _count(self, counter: str) -> None:
        if self._metrics is not None:
            self._metrics.incr(counter)

    async def _fetch_playlist(self, url: str) -> str:
        self._count("playlist_upstream_fetches")
        try:
            return await self.upstream.fetch_text(url)
        except UpstreamFetchError:
            self._count("upstream_failures")
            raise

    async def _ensure_task_dir(self, task_id: str) -> None:
        try:
            await asyncio.to_thread(self.cache.ensure_task_dir, task_id)
        except OSError as e:
            log.error("cache_dir_create_failed", task_id=task_id, error=str(e))
            raise CacheStorageError(f"Failed to initialize cache for {task_id}: {e}") from e

    # --- Player path ---
    async def serve_playlist(self, url: str, proxy_base: str) -> str:
        """Return the rewritten playlist for *url*.

        A stored proxied body is served without contacting the origin.
        Variant playlists register their task in the background; the
        response never waits for it.

        Raises:
            InvalidSourceUrlError: *url* is not absolute http(s).
            UpstreamFetchError: origin unreachable or non-2xx.
            PlaylistParseError: origin body is not a playlist.
            CacheStorageError: the task directory cannot be created.
        """
        validate_source_url(url)
        task_id = fingerprint(url)

        content = await self.store.get_proxied_content(task_id)
        if content:
            self._count("playlist_cache_hits")
            log.debug("playlist_cache_hit", task_id=task_id)
            return content

        text = await self._fetch_playlist(url)
        parsed = parse_playlist(text)

        if parsed.is_master:
            log.info("master_playlist_served", url=url)
            return rewrite_master(parsed.document, proxy_base, url)

        await self._ensure_task_dir(task_id)
        rewrite = rewrite_variant(parsed.document, proxy_base, task_id, url)
        self._runner.spawn(
            self.orchestrator.register_variant(task_id, url, rewrite, trigger=Trigger.PLAYER),
            name=f"register:{task_id}",
        )
        log.info(
            "variant_playlist_served",
            task_id=task_id,
            total_segments=rewrite.total_segments,
        )
        return rewrite.text

    async def open_file(self, task_id: str, filename: str, url: str) -> FileSource:
        """Locate a segment/key/init file: from cache if complete, else live.

        The cached path is validated even on the live path so malformed
        task ids and filenames are rejected up front.  The live path does
        not register a fetch; the playlist rewrite already did.
        """
        path = self.cache.file_path(task_id, filename)
        if self.cache.is_complete(task_id, filename):
            self._count("segment_cache_hits")
            return CachedFile(path=path)

        validate_source_url(url)
        self._count("segment_passthroughs")
        log.debug("file_passthrough", task_id=task_id, filename=filename)
        try:
            return await self.upstream.open_stream(url)
        except UpstreamFetchError:
            self._count("upstream_failures")
            raise

    # --- API path ---
    async def check_can_add(self, url: str) -> str:
        """Validate an API add request; return the task id it maps to.

        Raises ``TaskAlreadyExistsError`` when that task is downloading or
        completed.
        """
        validate_source_url(url)
        task_id = fingerprint(url)
        exists, status = await self.store.check_exists(task_id)
        if exists and status is not None and status.is_active:
            raise TaskAlreadyExistsError(task_id, status)
        return task_id

    async def start_download(self, url: str, *, _depth: int = 0) -> str:
        """Fetch *url* and download it without a player.

        Master playlists are followed to their highest-bandwidth variant.
        Returns the id of the task that was created or resurrected.
        """
        task_id = await self.check_can_add(url)

        text = await self._fetch_playlist(url)
        parsed = parse_playlist(text)

        if parsed.is_master:
            if _depth >= MAX_MASTER_DEPTH:
                raise PlaylistParseError(f"Master playlists nested too deep: {url}")
            best = select_best_variant(parsed.document, url)
            log.info("master_variant_selected", url=url, variant=best)
            return await self.start_download(best, _depth=_depth + 1)

        await self._ensure_task_dir(task_id)
        rewrite = rewrite_variant(parsed.document, self.public_proxy_base, task_id, url)
        await self.orchestrator.register_variant(task_id, url, rewrite, trigger=Trigger.API)
        return task_id
