"""Tests for the httpx-backed transport."""

from __future__ import annotations

import json

import httpx
import pytest

from reqflow.client.transport import HttpxTransport, RawResponse
from reqflow.exceptions import NetworkError, TimeoutError_
from reqflow.models import RequestDescriptor


def _request(**kwargs) -> RequestDescriptor:
    kwargs.setdefault("method", "GET")
    kwargs.setdefault("url", "https://api.example.com/items")
    return RequestDescriptor(**kwargs)


class TestSend:
    @pytest.mark.asyncio
    async def test_returns_raw_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"X-Id": "1"}, content=b"hello")

        transport = HttpxTransport(transport=httpx.MockTransport(handler))
        raw = await transport.send(_request())
        assert isinstance(raw, RawResponse)
        assert raw.status == 200
        assert raw.content == b"hello"
        assert raw.headers["x-id"] == "1"
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_headers_params_and_json_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        transport = HttpxTransport(transport=httpx.MockTransport(handler))
        await transport.send(
            _request(method="POST", headers={"X-Key": "abc"}, params={"page": 2}, body={"name": "x"})
        )
        sent = seen[0]
        assert sent.headers["x-key"] == "abc"
        assert sent.url.params["page"] == "2"
        assert json.loads(sent.content) == {"name": "x"}

    @pytest.mark.asyncio
    async def test_bytes_body_sent_as_content(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        transport = HttpxTransport(transport=httpx.MockTransport(handler))
        await transport.send(_request(method="PUT", body=b"\x00\x01"))
        assert seen[0].content == b"\x00\x01"

    @pytest.mark.asyncio
    async def test_connect_error_mapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport = HttpxTransport(transport=httpx.MockTransport(handler))
        with pytest.raises(NetworkError) as exc_info:
            await transport.send(_request())
        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_timeout_mapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        transport = HttpxTransport(transport=httpx.MockTransport(handler))
        with pytest.raises(TimeoutError_):
            await transport.send(_request(), timeout=0.1)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self) -> None:
        client = httpx.AsyncClient()
        transport = HttpxTransport(client)
        await transport.aclose()
        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self) -> None:
        transport = HttpxTransport()
        await transport.aclose()
        assert transport._client.is_closed is True
