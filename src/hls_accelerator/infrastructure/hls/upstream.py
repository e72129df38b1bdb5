"""Upstream HTTP access for playlists and live pass-through.

Every request carries the configured static header set (User-Agent,
Referer, Cookie, ...) and acquires a shared semaphore so that many
players polling at once cannot open an unbounded number of origin
connections.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass

import httpx
import structlog

from hls_accelerator.domain.entities.playlist import UpstreamFetchError

log = structlog.get_logger(__name__)

# Headers that describe a single connection and must not be relayed.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

_STREAM_CHUNK_SIZE = 65536


@dataclass
class UpstreamStream:
    """An open upstream response whose body has not been read yet."""

    status_code: int
    headers: dict[str, str]
    response: httpx.Response

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield the raw body and close the response when done."""
        try:
            async for chunk in self.response.aiter_raw(_STREAM_CHUNK_SIZE):
                yield chunk
        finally:
            await self.response.aclose()

    async def aclose(self) -> None:
        await self.response.aclose()


def relayable_headers(headers: httpx.Headers) -> dict[str, str]:
    """Upstream response headers minus hop-by-hop ones."""
    return {k: v for k, v in headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}


class UpstreamClient:
    """Thin wrapper around a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        headers: Mapping[str, str],
        *,
        max_concurrent: int = 50,
        timeout_seconds: float = 30.0,
        follow_redirects: bool = True,
    ) -> None:
        self._client = http_client
        self._headers = dict(headers)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._timeout = timeout_seconds
        self._follow_redirects = follow_redirects

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    async def fetch_text(self, url: str) -> str:
        """GET *url* and return the decoded body.

        Raises ``UpstreamFetchError`` on transport errors and non-2xx status.
        """
        async with self._semaphore:
            try:
                resp = await self._client.get(
                    url,
                    headers=self._headers,
                    follow_redirects=self._follow_redirects,
                    timeout=self._timeout,
                )
            except httpx.HTTPError as exc:
                log.warning("upstream_fetch_failed", url=url, error=str(exc))
                raise UpstreamFetchError(url, reason=str(exc)) from exc

        if not resp.is_success:
            log.warning("upstream_bad_status", url=url, status=resp.status_code)
            raise UpstreamFetchError(url, status_code=resp.status_code)

        return resp.text

    async def open_stream(self, url: str) -> UpstreamStream:
        """Start a streaming GET and return it without reading the body.

        The upstream status is returned as-is (pass-through relays it);
        only transport errors raise ``UpstreamFetchError``.  The caller
        owns the stream and must exhaust or close it.
        """
        request = self._client.build_request(
            "GET", url, headers=self._headers, timeout=self._timeout
        )
        async with self._semaphore:
            try:
                resp = await self._client.send(
                    request,
                    stream=True,
                    follow_redirects=self._follow_redirects,
                )
            except httpx.HTTPError as exc:
                log.warning("upstream_stream_failed", url=url, error=str(exc))
                raise UpstreamFetchError(url, reason=str(exc)) from exc

        return UpstreamStream(
            status_code=resp.status_code,
            headers=relayable_headers(resp.headers),
            response=resp,
        )
