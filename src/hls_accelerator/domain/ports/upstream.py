"""Port for fetching playlists and relaying files from the origin."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol


class UpstreamStreamPort(Protocol):
    status_code: int
    headers: dict[str, str]

    def iter_bytes(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


class UpstreamPort(Protocol):
    """Origin access with the configured forwarded headers.

    ``fetch_text`` raises ``UpstreamFetchError`` for transport errors and
    non-2xx responses; ``open_stream`` only for transport errors.
    """

    async def fetch_text(self, url: str) -> str: ...

    async def open_stream(self, url: str) -> UpstreamStreamPort: ...
