from .fetch import FetchEngineError, FetchEngineMalformedResponse
from .playlist import (
    FetchItem,
    FetchKind,
    InvalidSourceUrlError,
    PlaylistError,
    PlaylistKind,
    PlaylistParseError,
    UpstreamFetchError,
    VariantRewrite,
)
from .task import (
    CacheCleanupError,
    CacheStorageError,
    InvalidCacheKeyError,
    Task,
    TaskAlreadyExistsError,
    TaskError,
    TaskItem,
    TaskNotFoundError,
    TaskProgress,
    TaskStatus,
    TaskStillDownloadingError,
    is_segment_filename,
)

__all__ = [
    "CacheCleanupError",
    "CacheStorageError",
    "FetchEngineError",
    "FetchEngineMalformedResponse",
    "FetchItem",
    "FetchKind",
    "InvalidCacheKeyError",
    "InvalidSourceUrlError",
    "PlaylistError",
    "PlaylistKind",
    "PlaylistParseError",
    "Task",
    "TaskAlreadyExistsError",
    "TaskError",
    "TaskItem",
    "TaskNotFoundError",
    "TaskProgress",
    "TaskStatus",
    "TaskStillDownloadingError",
    "UpstreamFetchError",
    "VariantRewrite",
    "is_segment_filename",
]
