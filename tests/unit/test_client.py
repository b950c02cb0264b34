"""
Tests for ProviderClient error mapping and streaming.
"""

import json

import httpx
import pytest

from llm_gateway.core.errors import (
    ProviderAuthenticationError,
    ProviderHttpError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderTransportError,
)

from conftest import make_client, stream_body

URL = "https://api.openai.test/v1/chat/completions"


class TestInvoke:
    """Test non-streaming calls."""

    @pytest.mark.asyncio
    async def test_returns_parsed_json(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={"ok": True})

        client = make_client(handler)
        data = await client.invoke(URL, {"model": "m"}, headers={"Authorization": "Bearer k"})

        assert data == {"ok": True}
        assert seen["body"] == {"model": "m"}
        assert seen["auth"] == "Bearer k"

    @pytest.mark.asyncio
    async def test_http_error(self):
        def handler(request):
            return httpx.Response(500, json={"error": {"message": "boom"}})

        client = make_client(handler)
        with pytest.raises(ProviderHttpError) as exc:
            await client.invoke(URL, {}, provider="openai")

        assert exc.value.status_code == 500
        assert exc.value.body == {"error": {"message": "boom"}}
        assert exc.value.provider == "openai"
        assert "boom" in exc.value.message

    @pytest.mark.asyncio
    async def test_text_error_body(self):
        def handler(request):
            return httpx.Response(502, text="bad gateway")

        client = make_client(handler)
        with pytest.raises(ProviderHttpError) as exc:
            await client.invoke(URL, {})
        assert exc.value.body == "bad gateway"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_authentication_error(self, status):
        client = make_client(lambda request: httpx.Response(status, json={}))
        with pytest.raises(ProviderAuthenticationError) as exc:
            await client.invoke(URL, {})
        assert exc.value.status_code == status

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "7"}, json={"error": "slow down"})

        client = make_client(handler)
        with pytest.raises(ProviderRateLimitError) as exc:
            await client.invoke(URL, {})
        assert exc.value.retry_after == 7.0
        assert isinstance(exc.value, ProviderHttpError)

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(ProviderTransportError) as exc:
            await client.invoke(URL, {})
        assert not isinstance(exc.value, ProviderTimeoutError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = make_client(handler)
        with pytest.raises(ProviderTimeoutError):
            await client.invoke(URL, {})

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = make_client(lambda request: httpx.Response(200, text="not json"))
        with pytest.raises(ProviderTransportError):
            await client.invoke(URL, {})


class TestStreaming:
    """Test streaming calls."""

    @pytest.mark.asyncio
    async def test_yields_chunks(self):
        chunks = [b"data: 1\n\n", b"data: 2\n\n", b"data: [DONE]\n\n"]

        def handler(request):
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(200, content=stream_body(chunks))

        client = make_client(handler)
        stream = await client.invoke(URL, {"stream": True}, streaming=True)
        received = [chunk async for chunk in stream]

        assert b"".join(received) == b"".join(chunks)

    @pytest.mark.asyncio
    async def test_status_error_raised_before_iteration(self):
        def handler(request):
            return httpx.Response(404, json={"error": {"message": "no model"}})

        client = make_client(handler)
        with pytest.raises(ProviderHttpError) as exc:
            await client.invoke(URL, {}, streaming=True)
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(ProviderTransportError):
            await client.invoke(URL, {}, streaming=True)

    @pytest.mark.asyncio
    async def test_deadline_bounds_the_stream(self):
        """Test that a stalled stream is cut off by the deadline."""
        import asyncio

        async def stalled():
            yield b"data: 1\n\n"
            await asyncio.sleep(10)
            yield b"data: 2\n\n"

        client = make_client(lambda request: httpx.Response(200, content=stalled()))
        stream = await client.invoke(URL, {}, streaming=True, timeout=0.2)

        received = []
        with pytest.raises(ProviderTimeoutError):
            async for chunk in stream:
                received.append(chunk)
        assert received == [b"data: 1\n\n"]
