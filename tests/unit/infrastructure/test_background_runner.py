"""Tests for BackgroundRunner."""

from __future__ import annotations

import asyncio

from hls_accelerator.infrastructure.background import BackgroundRunner


class TestSpawn:
    async def test_spawned_job_runs(self) -> None:
        runner = BackgroundRunner()
        done: list[str] = []

        async def job() -> None:
            done.append("ran")

        runner.spawn(job(), name="job")
        assert runner.pending == 1
        assert await runner.drain() == 0
        assert done == ["ran"]
        assert runner.pending == 0

    async def test_task_name_is_set(self) -> None:
        runner = BackgroundRunner()
        task = runner.spawn(asyncio.sleep(0), name="register:abc")
        assert task.get_name() == "register:abc"
        await runner.drain()

    async def test_failed_job_is_released(self) -> None:
        runner = BackgroundRunner()

        async def boom() -> None:
            raise RuntimeError("boom")

        runner.spawn(boom(), name="boom")
        assert await runner.drain() == 0
        assert runner.pending == 0


class TestDrain:
    async def test_drain_with_nothing_pending(self) -> None:
        assert await BackgroundRunner().drain(timeout=0.1) == 0

    async def test_drain_waits_for_nested_spawns(self) -> None:
        runner = BackgroundRunner()
        order: list[str] = []

        async def child() -> None:
            await asyncio.sleep(0.01)
            order.append("child")

        async def parent() -> None:
            order.append("parent")
            runner.spawn(child(), name="child")

        runner.spawn(parent(), name="parent")
        await runner.drain(timeout=2.0)
        assert order == ["parent", "child"]

    async def test_timeout_cancels_leftovers(self) -> None:
        runner = BackgroundRunner()
        cancelled = asyncio.Event()

        async def slow() -> None:
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        async def fast() -> None:
            await asyncio.sleep(0)

        runner.spawn(slow(), name="slow")
        runner.spawn(fast(), name="fast")

        assert await runner.drain(timeout=0.05) == 1
        assert cancelled.is_set()
        assert runner.pending == 0
