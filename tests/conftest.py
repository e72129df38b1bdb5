"""Shared test fixtures for the hls-accelerator test suite."""

from __future__ import annotations

import itertools
from collections.abc import Mapping
from pathlib import Path

import pytest

from hls_accelerator.application.use_cases import TaskOrchestrator
from hls_accelerator.domain.entities import FetchEngineError
from hls_accelerator.infrastructure.background import BackgroundRunner
from hls_accelerator.infrastructure.cache import FileCacheStore
from hls_accelerator.infrastructure.metrics import ProxyMetrics
from hls_accelerator.infrastructure.persistence import SqliteTaskStore

# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------

SOURCE_URL = "https://origin.example.com/live/stream/index.m3u8"
MASTER_URL = "https://origin.example.com/live/master.m3u8"
PROXY_BASE = "http://testserver/proxy"

MASTER_PLAYLIST = """\
#EXTM3U
#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aud",NAME="English",DEFAULT=YES,URI="audio/en.m3u8"
#EXT-X-STREAM-INF:BANDWIDTH=1280000,RESOLUTION=640x360,AUDIO="aud"
low/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=5120000,RESOLUTION=1920x1080,AUDIO="aud"
https://cdn2.example.com/hi/index.m3u8?sig=a%2Fb
#EXT-X-STREAM-INF:BANDWIDTH=2560000,RESOLUTION=1280x720,AUDIO="aud"
mid/index.m3u8
#EXT-X-I-FRAME-STREAM-INF:BANDWIDTH=86000,URI="iframe/index.m3u8"
"""

VARIANT_PLAYLIST = """\
#EXTM3U
#EXT-X-VERSION:3
#EXT-X-TARGETDURATION:10
#EXT-X-MEDIA-SEQUENCE:0
#EXTINF:10.0,
seg-1.ts?token=abc
#EXTINF:10.0,
seg-2.ts?token=abc
#EXTINF:10.0,
https://cdn.example.com/other/seg-3.ts
#EXT-X-ENDLIST
"""


def encrypted_playlist(segments: int = 50) -> str:
    """Media playlist where every segment shares one AES-128 key."""
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        "#EXT-X-TARGETDURATION:6",
        '#EXT-X-KEY:METHOD=AES-128,URI="keys/k1.bin"',
    ]
    for i in range(1, segments + 1):
        lines.append("#EXTINF:6.0,")
        lines.append(f"chunk_{i}.ts")
    lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Fetch engine double
# ---------------------------------------------------------------------------


class FakeFetchEngine:
    """In-memory FetchEnginePort recording every call in order.

    ``events`` may be shared with other doubles to assert cross-component
    ordering.
    """

    def __init__(self, events: list[tuple[str, str]] | None = None) -> None:
        self.events: list[tuple[str, str]] = events if events is not None else []
        self.submitted: list[dict[str, object]] = []
        self.fail_urls: set[str] = set()
        self.cancel_error = False
        self.forget_error = False
        self._ids = itertools.count(1)

    async def submit(
        self,
        url: str,
        target_dir: str,
        filename: str,
        headers: Mapping[str, str],
    ) -> str:
        if url in self.fail_urls:
            raise FetchEngineError(f"rejected: {url}")
        handle = f"gid-{next(self._ids):04d}"
        self.submitted.append(
            {
                "url": url,
                "target_dir": target_dir,
                "filename": filename,
                "headers": dict(headers),
                "handle": handle,
            }
        )
        self.events.append(("submit", handle))
        return handle

    async def cancel(self, job_handle: str) -> None:
        self.events.append(("cancel", job_handle))
        if self.cancel_error:
            raise FetchEngineError("job not found", code=1)

    async def forget_result(self, job_handle: str) -> None:
        self.events.append(("forget", job_handle))
        if self.forget_error:
            raise FetchEngineError("job not found", code=1)

    @property
    def cancelled(self) -> list[str]:
        return [h for kind, h in self.events if kind == "cancel"]

    @property
    def forgotten(self) -> list[str]:
        return [h for kind, h in self.events if kind == "forget"]


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture()
def file_cache(cache_root: Path) -> FileCacheStore:
    return FileCacheStore(cache_root, incomplete_suffix=".aria2")


@pytest.fixture()
async def task_store(tmp_path: Path) -> SqliteTaskStore:
    """Real SqliteTaskStore backed by tmp_path (auto-cleaned)."""
    store = SqliteTaskStore(tmp_path / "db" / "tasks.db")
    async with store:
        yield store


@pytest.fixture()
def fake_engine() -> FakeFetchEngine:
    return FakeFetchEngine()


@pytest.fixture()
def runner() -> BackgroundRunner:
    return BackgroundRunner()


@pytest.fixture()
def metrics() -> ProxyMetrics:
    return ProxyMetrics()


@pytest.fixture()
def forwarded_headers() -> dict[str, str]:
    return {"User-Agent": "test-agent/1.0", "Referer": "https://origin.example.com/"}


@pytest.fixture()
def orchestrator(
    task_store: SqliteTaskStore,
    file_cache: FileCacheStore,
    fake_engine: FakeFetchEngine,
    runner: BackgroundRunner,
    metrics: ProxyMetrics,
    forwarded_headers: dict[str, str],
) -> TaskOrchestrator:
    return TaskOrchestrator(
        task_store,
        file_cache,
        fake_engine,
        runner,
        headers=forwarded_headers,
        metrics=metrics,
    )


@pytest.fixture()
def source_url() -> str:
    return SOURCE_URL


@pytest.fixture()
def master_url() -> str:
    return MASTER_URL


@pytest.fixture()
def proxy_base() -> str:
    return PROXY_BASE


@pytest.fixture()
def master_playlist() -> str:
    return MASTER_PLAYLIST


@pytest.fixture()
def variant_playlist() -> str:
    return VARIANT_PLAYLIST


@pytest.fixture()
def make_encrypted_playlist():
    """Factory: ``make_encrypted_playlist(segments=50)``."""
    return encrypted_playlist
