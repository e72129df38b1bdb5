"""Detached background jobs with an explicit handle.

Work that must not block the HTTP response (task registration, fetch
dispatch) is spawned here instead of via a bare ``create_task``: the
runner holds a strong reference until the job ends, logs failures, and
lets tests and shutdown wait for everything still in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

log = structlog.get_logger(__name__)


class BackgroundRunner:
    """Track detached coroutines until they finish.

    Usage::

        runner = BackgroundRunner()
        runner.spawn(orchestrator.register_variant(...), name="register:abc")

        # In tests or lifespan shutdown:
        await runner.drain(timeout=10.0)
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            log.debug("background_task_cancelled", name=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "background_task_failed",
                name=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=exc,
            )

    async def drain(self, timeout: float | None = None) -> int:
        """Wait for every pending job; cancel what is left after *timeout*.

        Jobs spawned while draining are awaited too.  Returns the number of
        jobs that had to be cancelled.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self._tasks:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            _, still_pending = await asyncio.wait(set(self._tasks), timeout=remaining)
            if still_pending and deadline is not None and loop.time() >= deadline:
                for task in still_pending:
                    task.cancel()
                await asyncio.gather(*still_pending, return_exceptions=True)
                log.warning("background_drain_timeout", cancelled=len(still_pending))
                return len(still_pending)

        return 0
