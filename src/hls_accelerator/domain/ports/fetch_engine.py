"""Port for the out-of-process parallel fetch engine."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable


@runtime_checkable
class FetchEnginePort(Protocol):
    """Accepts "fetch URL to dir/filename" jobs and returns a job handle.

    All methods raise ``FetchEngineError`` on failure.  Callers treat
    ``cancel`` and ``forget_result`` failures as ignorable.
    """

    async def submit(
        self,
        url: str,
        target_dir: str,
        filename: str,
        headers: Mapping[str, str],
    ) -> str: ...

    async def cancel(self, job_handle: str) -> None: ...

    async def forget_result(self, job_handle: str) -> None: ...
