"""Domain entities for playlist rewriting and fetch planning."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PlaylistKind(str, Enum):
    MASTER = "master"
    VARIANT = "variant"


class FetchKind(str, Enum):
    SEGMENT = "segment"
    KEY = "key"
    INIT = "init"


@dataclass(frozen=True)
class FetchItem:
    """A single file the rewrite determined must be retrieved."""

    url: str  # resolved absolute source URL
    filename: str  # cache-relative target name
    kind: FetchKind = FetchKind.SEGMENT


@dataclass(frozen=True)
class VariantRewrite:
    """Result of rewriting a media playlist."""

    text: str
    items: list[FetchItem] = field(default_factory=list)
    total_segments: int = 0


class PlaylistError(Exception):
    """Base class for playlist retrieval and parsing errors."""


class UpstreamFetchError(PlaylistError):
    """Network failure or non-2xx response from the playlist origin."""

    def __init__(self, url: str, status_code: int | None = None, reason: str = "") -> None:
        if status_code is not None:
            message = f"Upstream returned bad status {status_code}: {url}"
        else:
            message = f"Failed to fetch upstream {url}: {reason}"
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class PlaylistParseError(PlaylistError):
    """Upstream body is not a valid HLS playlist."""


class InvalidSourceUrlError(ValueError):
    """Requested source URL is not an absolute http(s) URL."""
