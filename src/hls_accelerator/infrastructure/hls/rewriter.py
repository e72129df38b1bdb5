"""HLS playlist parsing and proxy rewriting.

Every child reference of a playlist (variant, rendition, segment, key,
init section) is resolved against the playlist's own URL and replaced
with a proxy URL that carries the resolved source URL, form-encoded, as
its last path component::

    {proxy_base}/m3u8/{encoded}
    {proxy_base}/seg/{task_id}/{00001.ts}/{encoded}
    {proxy_base}/seg/{task_id}/init-{md5}.mp4/{encoded}
    {proxy_base}/key/{task_id}/{md5}.key/{encoded}

Parsing is delegated to the ``m3u8`` library; this module only walks and
mutates the parsed tree and re-serializes it.
"""

from __future__ import annotations

import hashlib
import posixpath
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote_plus, unquote_plus, urljoin, urlparse

import m3u8
import structlog

from hls_accelerator.domain.entities.playlist import (
    FetchItem,
    FetchKind,
    PlaylistKind,
    PlaylistParseError,
    VariantRewrite,
)

log = structlog.get_logger(__name__)

DEFAULT_SEGMENT_EXT = ".ts"
DEFAULT_INIT_EXT = ".mp4"
KEY_EXT = ".key"


@dataclass(frozen=True)
class ParsedPlaylist:
    kind: PlaylistKind
    document: m3u8.M3U8

    @property
    def is_master(self) -> bool:
        return self.kind is PlaylistKind.MASTER


def parse_playlist(text: str) -> ParsedPlaylist:
    """Parse playlist text; raise ``PlaylistParseError`` if it is not HLS."""
    text = text.lstrip("\ufeff \t\r\n")
    if not text.startswith("#EXTM3U"):
        raise PlaylistParseError("Upstream body is not an HLS playlist (missing #EXTM3U)")
    try:
        document = m3u8.loads(text)
    except Exception as exc:
        raise PlaylistParseError(f"Failed to parse playlist: {exc}") from exc

    kind = PlaylistKind.MASTER if document.is_variant else PlaylistKind.VARIANT
    return ParsedPlaylist(kind=kind, document=document)


def resolve_url(source_base: str, reference: str) -> str:
    """Resolve *reference* against *source_base* (RFC 3986).

    A reference that cannot be resolved is returned unchanged.
    """
    try:
        return urljoin(source_base, reference)
    except ValueError:
        log.debug("url_resolve_failed", base=source_base, reference=reference)
        return reference


def encode_source_url(url: str) -> str:
    """Form-encode a URL so it fits into a single path component."""
    return quote_plus(url, safe="")


def decode_source_url(encoded: str) -> str:
    """Exact inverse of :func:`encode_source_url`."""
    return unquote_plus(encoded)


def url_digest(url: str) -> str:
    return hashlib.md5(url.encode("utf-8")).hexdigest()


def _path_ext(url: str, default: str) -> str:
    ext = posixpath.splitext(urlparse(url).path)[1]
    return ext or default


def playlist_proxy_url(proxy_base: str, resolved: str) -> str:
    return f"{proxy_base}/m3u8/{encode_source_url(resolved)}"


def _file_proxy_url(
    proxy_base: str, route: str, task_id: str, filename: str, resolved: str
) -> str:
    return f"{proxy_base}/{route}/{task_id}/{filename}/{encode_source_url(resolved)}"


def _serialize(document: m3u8.M3U8) -> str:
    try:
        return document.dumps()
    except Exception as exc:
        raise PlaylistParseError(f"Failed to serialize playlist: {exc}") from exc


def rewrite_master(document: m3u8.M3U8, proxy_base: str, source_base: str) -> str:
    """Point every variant, rendition and I-frame playlist at the proxy.

    Master playlists never produce fetch items; the chosen variant is
    handled by its own request.
    """
    rewritten = 0
    for variant in document.playlists:
        if variant.uri:
            variant.uri = playlist_proxy_url(proxy_base, resolve_url(source_base, variant.uri))
            rewritten += 1
    for media in document.media:
        if media.uri:
            media.uri = playlist_proxy_url(proxy_base, resolve_url(source_base, media.uri))
            rewritten += 1
    for iframe in document.iframe_playlists:
        if iframe.uri:
            iframe.uri = playlist_proxy_url(proxy_base, resolve_url(source_base, iframe.uri))
            rewritten += 1

    log.debug("master_rewritten", source=source_base, references=rewritten)
    return _serialize(document)


def rewrite_variant(
    document: m3u8.M3U8,
    proxy_base: str,
    task_id: str,
    source_base: str,
) -> VariantRewrite:
    """Rewrite a media playlist and collect the files it implies.

    Segments are numbered by order of appearance, starting at ``00001``.
    Keys and init sections are often shared by many segments: each
    distinct one is rewritten once and yields a single fetch item.
    """
    items: list[FetchItem] = []
    seen_files: set[str] = set()
    # m3u8 shares one Key object between all segments it applies to;
    # rewriting it twice would wrap an already proxied URI.
    rewritten_objects: set[int] = set()
    total_segments = 0

    def rewrite_init(init: Any) -> None:
        if init is None or not init.uri or id(init) in rewritten_objects:
            return
        rewritten_objects.add(id(init))
        init_url = resolve_url(source_base, init.uri)
        init_name = f"init-{url_digest(init_url)}{_path_ext(init_url, DEFAULT_INIT_EXT)}"
        init.uri = _file_proxy_url(proxy_base, "seg", task_id, init_name, init_url)
        if init_name not in seen_files:
            seen_files.add(init_name)
            items.append(FetchItem(url=init_url, filename=init_name, kind=FetchKind.INIT))

    for segment in document.segments:
        if not segment.uri:
            continue

        total_segments += 1
        resolved = resolve_url(source_base, segment.uri)
        filename = f"{total_segments:05d}{_path_ext(resolved, DEFAULT_SEGMENT_EXT)}"
        segment.uri = _file_proxy_url(proxy_base, "seg", task_id, filename, resolved)
        items.append(FetchItem(url=resolved, filename=filename, kind=FetchKind.SEGMENT))

        key = segment.key
        if key is not None and key.uri and id(key) not in rewritten_objects:
            rewritten_objects.add(id(key))
            key_url = resolve_url(source_base, key.uri)
            key_name = f"{url_digest(key_url)}{KEY_EXT}"
            key.uri = _file_proxy_url(proxy_base, "key", task_id, key_name, key_url)
            if key_name not in seen_files:
                seen_files.add(key_name)
                items.append(FetchItem(url=key_url, filename=key_name, kind=FetchKind.KEY))

        rewrite_init(segment.init_section)

    # Playlist-level EXT-X-MAP copies (serialized by some m3u8 versions).
    for init in getattr(document, "segment_map", None) or []:
        rewrite_init(init)

    text = _serialize(document)
    log.debug(
        "variant_rewritten",
        task_id=task_id,
        total_segments=total_segments,
        items=len(items),
    )
    return VariantRewrite(text=text, items=items, total_segments=total_segments)


def _bandwidth(variant: Any) -> int:
    info = getattr(variant, "stream_info", None)
    return int(getattr(info, "bandwidth", None) or 0)


def select_best_variant(document: m3u8.M3U8, source_base: str) -> str:
    """Resolved URL of the highest-bandwidth variant (first one wins ties)."""
    best = None
    for variant in document.playlists:
        if not variant.uri:
            continue
        if best is None or _bandwidth(variant) > _bandwidth(best):
            best = variant
    if best is None:
        raise PlaylistParseError("Master playlist has no variant streams")
    return resolve_url(source_base, best.uri)
