from .cache_store import CacheStorePort
from .fetch_engine import FetchEnginePort
from .task_store import TaskStorePort
from .upstream import UpstreamPort, UpstreamStreamPort

__all__ = [
    "CacheStorePort",
    "FetchEnginePort",
    "TaskStorePort",
    "UpstreamPort",
    "UpstreamStreamPort",
]
