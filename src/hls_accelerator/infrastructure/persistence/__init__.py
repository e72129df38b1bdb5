from .sqlite_task_store import SqliteTaskStore

__all__ = ["SqliteTaskStore"]
