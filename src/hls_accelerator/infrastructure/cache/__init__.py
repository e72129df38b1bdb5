"""Cache Infrastructure - on-disk segment cache."""

from .file_cache import FileCacheStore

__all__ = ["FileCacheStore"]
