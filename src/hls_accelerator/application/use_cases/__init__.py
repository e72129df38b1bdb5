from .playlist_proxy import CachedFile, PlaylistProxyService, validate_source_url
from .task_orchestrator import TaskOrchestrator, Trigger

__all__ = [
    "CachedFile",
    "PlaylistProxyService",
    "TaskOrchestrator",
    "Trigger",
    "validate_source_url",
]
