"""Tests for the aria2 JSON-RPC client."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from hls_accelerator.domain.entities import FetchEngineError, FetchEngineMalformedResponse
from hls_accelerator.infrastructure.fetch_engine import Aria2Client

_RPC = "http://aria2.test:6800/jsonrpc"


def _ok(result: object) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": "1", "result": result})


class TestSubmit:
    @respx.mock
    async def test_payload_and_gid(self) -> None:
        route = respx.post(_RPC).mock(return_value=_ok("2089b05ecca3d829"))
        async with httpx.AsyncClient() as http:
            client = Aria2Client(http, _RPC, secret="s3cret")
            gid = await client.submit(
                "https://cdn.example.com/seg-1.ts",
                "/cache/abc",
                "00001.ts",
                {"User-Agent": "ua/1.0", "Referer": "https://origin.example.com/"},
            )

        assert gid == "2089b05ecca3d829"
        body = json.loads(route.calls.last.request.content)
        assert body["jsonrpc"] == "2.0"
        assert body["method"] == "aria2.addUri"
        token, uris, options = body["params"]
        assert token == "token:s3cret"
        assert uris == ["https://cdn.example.com/seg-1.ts"]
        assert options == {
            "dir": "/cache/abc",
            "out": "00001.ts",
            "header": ["User-Agent: ua/1.0", "Referer: https://origin.example.com/"],
        }

    @respx.mock
    async def test_no_secret_omits_token(self) -> None:
        route = respx.post(_RPC).mock(return_value=_ok("gid1"))
        async with httpx.AsyncClient() as http:
            await Aria2Client(http, _RPC).submit("https://x/1.ts", "/d", "00001.ts", {})

        params = json.loads(route.calls.last.request.content)["params"]
        assert params[0] == ["https://x/1.ts"]
        assert params[1]["header"] == []

    @respx.mock
    async def test_request_ids_increase(self) -> None:
        route = respx.post(_RPC).mock(return_value=_ok("gid1"))
        async with httpx.AsyncClient() as http:
            client = Aria2Client(http, _RPC)
            await client.submit("https://x/1.ts", "/d", "00001.ts", {})
            await client.submit("https://x/2.ts", "/d", "00002.ts", {})

        ids = [json.loads(c.request.content)["id"] for c in route.calls]
        assert ids == ["1", "2"]

    @pytest.mark.parametrize("result", [None, "", 42, ["gid"]])
    async def test_non_string_result_is_malformed(self, result: object) -> None:
        with respx.mock:
            respx.post(_RPC).mock(return_value=_ok(result))
            async with httpx.AsyncClient() as http:
                with pytest.raises(FetchEngineMalformedResponse):
                    await Aria2Client(http, _RPC).submit("https://x/1.ts", "/d", "00001.ts", {})


class TestErrors:
    @respx.mock
    async def test_error_envelope_carries_code(self) -> None:
        respx.post(_RPC).mock(
            return_value=httpx.Response(
                400,
                json={"jsonrpc": "2.0", "id": "1", "error": {"code": 1, "message": "Unauthorized"}},
            )
        )
        async with httpx.AsyncClient() as http:
            with pytest.raises(FetchEngineError, match="Unauthorized") as exc_info:
                await Aria2Client(http, _RPC).cancel("gid1")
        assert exc_info.value.code == 1
        assert not isinstance(exc_info.value, FetchEngineMalformedResponse)

    @respx.mock
    async def test_non_json_body_is_malformed(self) -> None:
        respx.post(_RPC).mock(return_value=httpx.Response(502, text="<html>bad gateway</html>"))
        async with httpx.AsyncClient() as http:
            with pytest.raises(FetchEngineMalformedResponse):
                await Aria2Client(http, _RPC).cancel("gid1")

    @respx.mock
    async def test_missing_result_and_error_is_malformed(self) -> None:
        respx.post(_RPC).mock(return_value=httpx.Response(200, json={"jsonrpc": "2.0", "id": "1"}))
        async with httpx.AsyncClient() as http:
            with pytest.raises(FetchEngineMalformedResponse):
                await Aria2Client(http, _RPC).forget_result("gid1")

    @respx.mock
    async def test_transport_error(self) -> None:
        respx.post(_RPC).mock(side_effect=httpx.ConnectError("connection refused"))
        async with httpx.AsyncClient() as http:
            with pytest.raises(FetchEngineError, match="transport error"):
                await Aria2Client(http, _RPC).submit("https://x/1.ts", "/d", "00001.ts", {})


class TestCancelAndForget:
    @respx.mock
    async def test_cancel_uses_force_remove(self) -> None:
        route = respx.post(_RPC).mock(return_value=_ok("gid1"))
        async with httpx.AsyncClient() as http:
            await Aria2Client(http, _RPC, secret="s").cancel("gid1")

        body = json.loads(route.calls.last.request.content)
        assert body["method"] == "aria2.forceRemove"
        assert body["params"] == ["token:s", "gid1"]

    @respx.mock
    async def test_forget_uses_remove_download_result(self) -> None:
        route = respx.post(_RPC).mock(return_value=_ok("OK"))
        async with httpx.AsyncClient() as http:
            await Aria2Client(http, _RPC).forget_result("gid1")

        body = json.loads(route.calls.last.request.content)
        assert body["method"] == "aria2.removeDownloadResult"
        assert body["params"] == ["gid1"]
