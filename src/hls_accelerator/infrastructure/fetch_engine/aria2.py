"""aria2 JSON-RPC client implementing the fetch engine port."""

from __future__ import annotations

import itertools
from collections.abc import Mapping
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from hls_accelerator.domain.entities.fetch import (
    FetchEngineError,
    FetchEngineMalformedResponse,
)

log = structlog.get_logger(__name__)


class RpcError(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: int
    message: str = ""


class RpcResponse(BaseModel):
    """JSON-RPC 2.0 response envelope.

    Exactly one of ``result`` / ``error`` must be present; which one is
    checked via ``model_fields_set`` so an explicit ``"result": null`` is
    still distinguishable from a missing member.
    """

    model_config = ConfigDict(extra="ignore")

    jsonrpc: Optional[str] = None
    id: Any = None
    result: Any = None
    error: Optional[RpcError] = None


class Aria2Client:
    """Submits, cancels and forgets aria2 downloads over JSON-RPC.

    Args:
        http_client: Shared async client (transport only).
        rpc_url: aria2 endpoint, e.g. ``http://localhost:6800/jsonrpc``.
        secret: ``--rpc-secret`` token; sent as ``token:<secret>``.
        timeout_seconds: Per-call timeout.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        rpc_url: str,
        secret: str | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._client = http_client
        self.rpc_url = rpc_url
        self._secret = secret
        self._timeout = timeout_seconds
        self._ids = itertools.count(1)

    def _params(self, *params: Any) -> list[Any]:
        if self._secret:
            return [f"token:{self._secret}", *params]
        return list(params)

    async def _call(self, method: str, *params: Any) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": str(next(self._ids)),
            "method": method,
            "params": self._params(*params),
        }
        try:
            resp = await self._client.post(self.rpc_url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as exc:
            raise FetchEngineError(f"{method}: transport error: {exc}") from exc

        # aria2 reports RPC errors with a 4xx/5xx status and an error body,
        # so the envelope is decoded before the status is considered.
        try:
            envelope = RpcResponse.model_validate_json(resp.content)
        except ValidationError as exc:
            raise FetchEngineMalformedResponse(
                f"{method}: response is not a JSON-RPC envelope (HTTP {resp.status_code})"
            ) from exc

        if envelope.error is not None:
            raise FetchEngineError(
                f"{method}: {envelope.error.message}", code=envelope.error.code
            )
        if "result" not in envelope.model_fields_set:
            raise FetchEngineMalformedResponse(
                f"{method}: envelope has neither result nor error (HTTP {resp.status_code})"
            )
        return envelope.result

    async def submit(
        self,
        url: str,
        target_dir: str,
        filename: str,
        headers: Mapping[str, str],
    ) -> str:
        options = {
            "dir": target_dir,
            "out": filename,
            "header": [f"{k}: {v}" for k, v in headers.items()],
        }
        result = await self._call("aria2.addUri", [url], options)
        if not isinstance(result, str) or not result:
            raise FetchEngineMalformedResponse(
                f"aria2.addUri: expected a GID string, got {type(result).__name__}"
            )
        log.debug("aria2_job_submitted", gid=result, filename=filename)
        return result

    async def cancel(self, job_handle: str) -> None:
        await self._call("aria2.forceRemove", job_handle)
        log.debug("aria2_job_cancelled", gid=job_handle)

    async def forget_result(self, job_handle: str) -> None:
        await self._call("aria2.removeDownloadResult", job_handle)
        log.debug("aria2_job_forgotten", gid=job_handle)
