"""Task lifecycle: creation, fetch dispatch, progress, stop and delete."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine, Mapping, Sequence
from enum import Enum
from typing import Any, Protocol

import structlog

from hls_accelerator.domain.entities import (
    FetchEngineError,
    FetchItem,
    Task,
    TaskAlreadyExistsError,
    TaskItem,
    TaskNotFoundError,
    TaskProgress,
    TaskStatus,
    TaskStillDownloadingError,
    VariantRewrite,
)
from hls_accelerator.domain.ports import CacheStorePort, FetchEnginePort, TaskStorePort

log = structlog.get_logger(__name__)


class Trigger(str, Enum):
    """Who asked for a task: a polling player or an explicit API call."""

    PLAYER = "player"
    API = "api"


class _Spawner(Protocol):
    """Runs a coroutine detached from the caller."""

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> Any: ...


class _Counters(Protocol):
    def incr(self, counter: str, amount: int = 1) -> None: ...


class TaskOrchestrator:
    """State machine over the task store, the cache and the fetch engine.

    ``downloading -> completed`` is detected while listing,
    ``downloading|completed -> stopped`` happens on request, and a task
    that is not downloading may be deleted together with its files.

    The store's uniqueness constraints are the only dedup mechanism;
    nothing here holds a lock across an await.
    """

    def __init__(
        self,
        store: TaskStorePort,
        cache: CacheStorePort,
        engine: FetchEnginePort,
        runner: _Spawner,
        *,
        headers: Mapping[str, str],
        metrics: _Counters | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.engine = engine
        self._runner = runner
        self._headers = dict(headers)
        self._metrics = metrics

    def _count(self, counter: str, amount: int = 1) -> None:
        if self._metrics is not None and amount:
            self._metrics.incr(counter, amount)

    # --- Progress ---
    async def list_with_progress(self) -> list[TaskProgress]:
        """All tasks, newest first, with their downloaded segment count.

        A downloading task whose segments are all on disk is reported as
        completed right away; the stored status is flipped in the
        background.
        """
        tasks = await self.store.list_tasks()
        report: list[TaskProgress] = []

        for task in tasks:
            status = task.status
            if status is TaskStatus.COMPLETED:
                downloaded = task.total_segments
            else:
                downloaded = await self._count_downloaded(task.id)
                if (
                    status is TaskStatus.DOWNLOADING
                    and task.total_segments > 0
                    and downloaded >= task.total_segments
                ):
                    status = TaskStatus.COMPLETED
                    downloaded = task.total_segments
                    self._runner.spawn(
                        self._mark_completed(task.id), name=f"complete:{task.id}"
                    )

            report.append(
                TaskProgress(
                    id=task.id,
                    original_url=task.original_url,
                    total_segments=task.total_segments,
                    downloaded_segments=downloaded,
                    created_time=task.created_time,
                    status=status,
                )
            )

        return report

    async def _count_downloaded(self, task_id: str) -> int:
        items = await self.store.items_of(task_id)
        filenames = [item.filename for item in items if item.is_segment]
        if not filenames:
            return 0
        return await asyncio.to_thread(self._count_complete, task_id, filenames)

    def _count_complete(self, task_id: str, filenames: Sequence[str]) -> int:
        return sum(1 for name in filenames if self.cache.is_complete(task_id, name))

    async def _mark_completed(self, task_id: str) -> None:
        try:
            # A stop that landed after the listing wins.
            _, status = await self.store.check_exists(task_id)
            if status is not TaskStatus.DOWNLOADING:
                return
            await self.store.update_status(task_id, TaskStatus.COMPLETED)
        except Exception as e:
            # The next listing recomputes the same result.
            log.warning("task_complete_flip_failed", task_id=task_id, error=str(e))
            return
        log.info("task_completed", task_id=task_id)

    # --- Creation ---
    async def register_variant(
        self,
        task_id: str,
        original_url: str,
        rewrite: VariantRewrite,
        *,
        trigger: Trigger = Trigger.PLAYER,
    ) -> bool:
        """Create (or resurrect) the task for a rewritten variant and dispatch.

        Returns True when fetches were dispatched.

        - Active task (downloading/completed): nothing to do.
        - Stopped task: left alone for players, restarted for API calls.
        - Lost creation race: the winner dispatches; the proxied content
          is refreshed here.
        """
        exists, status = await self.store.check_exists(task_id)

        if exists and status is not None and status.is_active:
            log.debug(
                "task_already_active",
                task_id=task_id,
                status=status.value,
                trigger=trigger.value,
            )
            return False

        if exists:
            if trigger is Trigger.PLAYER:
                log.info("task_stopped_not_resurrected", task_id=task_id)
                return False
            await self._resurrect(task_id, rewrite)
        else:
            task = Task(
                id=task_id,
                original_url=original_url,
                total_segments=rewrite.total_segments,
                proxied_content=rewrite.text,
            )
            try:
                await self.store.create_task(task)
            except TaskAlreadyExistsError:
                log.info("task_create_race_lost", task_id=task_id, trigger=trigger.value)
                await self.store.update_proxied_content(task_id, rewrite.text)
                return False

        await self.trigger_downloads(task_id, rewrite.items)
        return True

    async def _resurrect(self, task_id: str, rewrite: VariantRewrite) -> None:
        # Item rows of a stopped task point at cancelled jobs.
        stale = await self.store.delete_items_of(task_id)
        await self.store.update_proxied_content(task_id, rewrite.text)
        await self.store.update_total_segments(task_id, rewrite.total_segments)
        await self.store.update_status(task_id, TaskStatus.DOWNLOADING)
        log.info("task_resurrected", task_id=task_id, stale_items=stale)

    # --- Dispatch ---
    async def trigger_downloads(self, task_id: str, items: Sequence[FetchItem]) -> int:
        """Submit every item not yet complete on disk; return the number submitted.

        A failed submission is logged and skipped.  A duplicate
        (task_id, filename) registration keeps the first job and discards
        the new one.
        """
        target_dir, complete = await asyncio.to_thread(
            self._prepare_dispatch, task_id, [item.filename for item in items]
        )
        handles: list[str] = []

        for item in items:
            if item.filename in complete:
                self._count("jobs_skipped_cached")
                continue

            try:
                handle = await self.engine.submit(
                    item.url, target_dir, item.filename, self._headers
                )
            except FetchEngineError as e:
                self._count("jobs_failed")
                log.warning(
                    "fetch_submit_failed",
                    task_id=task_id,
                    filename=item.filename,
                    error=str(e),
                )
                continue

            inserted = await self.store.create_task_item(
                TaskItem(
                    task_id=task_id,
                    filename=item.filename,
                    job_handle=handle,
                    url=item.url,
                )
            )
            if not inserted:
                await self._discard_job(task_id, handle)
                continue

            self._count("jobs_submitted")
            handles.append(handle)

        log.info(
            "fetches_dispatched",
            task_id=task_id,
            submitted=len(handles),
            items=len(items),
        )

        if handles:
            await self._flag_dispatch_after_stop(task_id, handles)
        return len(handles)

    def _prepare_dispatch(
        self, task_id: str, filenames: Sequence[str]
    ) -> tuple[str, set[str]]:
        target_dir = str(self.cache.ensure_task_dir(task_id))
        complete = {name for name in filenames if self.cache.is_complete(task_id, name)}
        return target_dir, complete

    async def _discard_job(self, task_id: str, handle: str) -> None:
        log.debug("duplicate_job_discarded", task_id=task_id, job_handle=handle)
        for call in (self.engine.cancel, self.engine.forget_result):
            try:
                await call(handle)
            except FetchEngineError as e:
                log.debug("duplicate_job_discard_failed", job_handle=handle, error=str(e))

    async def _flag_dispatch_after_stop(self, task_id: str, handles: list[str]) -> None:
        _, status = await self.store.check_exists(task_id)
        if status is TaskStatus.STOPPED:
            self._count("jobs_after_stop", len(handles))
            log.warning(
                "dispatch_after_stop",
                task_id=task_id,
                job_handles=handles,
            )

    # --- Stop / delete ---
    async def stop(self, task_id: str) -> None:
        """Mark the task stopped, then cancel its jobs (errors ignored)."""
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        await self.store.update_status(task_id, TaskStatus.STOPPED)

        handles = await self.store.job_handles_of(task_id)
        cancelled = 0
        for handle in handles:
            try:
                await self.engine.cancel(handle)
                cancelled += 1
            except FetchEngineError as e:
                # Finished or already removed jobs cannot be cancelled.
                log.debug("job_cancel_failed", task_id=task_id, job_handle=handle, error=str(e))

        log.info("task_stopped", task_id=task_id, jobs=len(handles), cancelled=cancelled)

    async def delete(self, task_id: str) -> None:
        """Remove a task that is not downloading, with its jobs, files and rows.

        Order: jobs, cache directory, item rows, task row.  A failed
        directory removal raises ``CacheCleanupError`` and leaves the rows
        in place so the delete can be retried.
        """
        exists, status = await self.store.check_exists(task_id)
        if not exists:
            raise TaskNotFoundError(task_id)
        if status is TaskStatus.DOWNLOADING:
            raise TaskStillDownloadingError(task_id)

        handles = await self.store.job_handles_of(task_id)
        for handle in handles:
            try:
                await self.engine.cancel(handle)
            except FetchEngineError as e:
                log.debug("job_cancel_failed", task_id=task_id, job_handle=handle, error=str(e))
            try:
                await self.engine.forget_result(handle)
            except FetchEngineError as e:
                log.debug("job_forget_failed", task_id=task_id, job_handle=handle, error=str(e))

        await asyncio.to_thread(self.cache.remove_task_dir, task_id)

        items = await self.store.delete_items_of(task_id)
        await self.store.delete_task(task_id)
        log.info("task_deleted", task_id=task_id, jobs=len(handles), items=items)
