"""Player-facing proxy endpoints: playlists, segments and keys.

The source URL travels form-encoded as the last path component.  It is
read from the raw request path: Starlette's decoded ``path`` would
already have turned ``%2F`` into ``/`` and cannot be decoded again
without corrupting URLs that contain escapes of their own.
"""

from __future__ import annotations

from typing import cast
from urllib.parse import unquote

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse, Response, StreamingResponse

from hls_accelerator.application.use_cases import CachedFile
from hls_accelerator.domain.entities import (
    CacheStorageError,
    InvalidCacheKeyError,
    InvalidSourceUrlError,
    PlaylistParseError,
    UpstreamFetchError,
)
from hls_accelerator.infrastructure.hls.rewriter import decode_source_url
from hls_accelerator.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/proxy", tags=["proxy"])

M3U8_MEDIA_TYPE = "application/vnd.apple.mpegurl"
CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


def _raw_tail(request: Request, marker: str, fallback: str) -> str:
    """Undecoded path after *marker* (e.g. ``/proxy/m3u8/``)."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
        _, sep, tail = path.partition(marker)
        if sep:
            return tail
    return fallback


def _proxy_base(request: Request) -> str:
    return str(request.base_url).rstrip("/") + "/proxy"


@router.get("/m3u8/{encoded:path}")
async def proxy_playlist(encoded: str, request: Request) -> Response:
    """Serve a rewritten master or variant playlist."""
    state = cast(AppState, request.app.state)

    tail = _raw_tail(request, "/proxy/m3u8/", encoded)
    if not tail:
        raise HTTPException(status_code=400, detail="Missing URL parameter")
    source_url = decode_source_url(tail)

    try:
        content = await state.playlist_service.serve_playlist(source_url, _proxy_base(request))
    except InvalidSourceUrlError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except UpstreamFetchError as e:
        log.warning("playlist_upstream_failed", url=source_url, error=str(e))
        raise HTTPException(status_code=502, detail="Failed to fetch upstream") from e
    except PlaylistParseError as e:
        log.warning("playlist_parse_failed", url=source_url, error=str(e))
        raise HTTPException(status_code=502, detail="Failed to parse m3u8") from e
    except CacheStorageError as e:
        raise HTTPException(status_code=500, detail="Failed to initialize cache") from e

    return Response(content=content, media_type=M3U8_MEDIA_TYPE, headers=CORS_HEADERS)


async def _proxy_file(request: Request, route: str, fallback: str) -> Response:
    state = cast(AppState, request.app.state)

    parts = _raw_tail(request, f"/proxy/{route}/", fallback).split("/", 2)
    if len(parts) < 3 or not all(parts):
        raise HTTPException(status_code=400, detail="Invalid path structure")
    task_id, filename = unquote(parts[0]), unquote(parts[1])
    source_url = decode_source_url(parts[2])

    try:
        source = await state.playlist_service.open_file(task_id, filename, source_url)
    except (InvalidCacheKeyError, InvalidSourceUrlError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except UpstreamFetchError as e:
        log.warning("passthrough_failed", task_id=task_id, filename=filename, error=str(e))
        raise HTTPException(status_code=502, detail="Failed to fetch upstream") from e

    if isinstance(source, CachedFile):
        return FileResponse(source.path, headers=CORS_HEADERS)

    headers = dict(source.headers)
    headers.update(CORS_HEADERS)
    return StreamingResponse(
        source.iter_bytes(),
        status_code=source.status_code,
        headers=headers,
    )


@router.get("/seg/{rest:path}")
async def proxy_segment(rest: str, request: Request) -> Response:
    """Serve a media segment or init section from cache, else relay it live."""
    return await _proxy_file(request, "seg", rest)


@router.get("/key/{rest:path}")
async def proxy_key(rest: str, request: Request) -> Response:
    """Serve an encryption key from cache, else relay it live."""
    return await _proxy_file(request, "key", rest)
