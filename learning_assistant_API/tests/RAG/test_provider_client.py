"""
Tests for the Gemini provider client, using httpx.MockTransport in place of
the network.
"""

import asyncio
import json

import httpx
import pytest

from learning_assistant_API.app.core.RAG.exceptions import ErrorKind, UpstreamError
from learning_assistant_API.app.core.RAG.rag_service.generation import (
    EMPTY_REPLY_ERROR,
    PROVIDER_ERROR,
    GeminiClient,
    extract_reply_text,
    outward_status,
)

PAYLOAD = {"contents": [{"role": "user", "parts": [{"text": "hello"}]}]}


def _reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _client(handler):
    return GeminiClient(
        base_url="https://provider.test/v1",
        timeout_seconds=20.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestStatusMapping:
    @pytest.mark.parametrize("upstream,outward", [(400, 502), (404, 502), (401, 401), (429, 429), (500, 500), (503, 503)])
    def test_outward_status(self, upstream, outward):
        assert outward_status(upstream) == outward

    def test_extract_reply_text(self):
        assert extract_reply_text(_reply("hi")) == "hi"
        assert extract_reply_text({"candidates": []}) == ""
        assert extract_reply_text({"candidates": [{"content": {"parts": [{}]}}]}) == ""
        assert extract_reply_text(None) == ""
        assert extract_reply_text(_reply(42)) == ""


class TestGeminiClient:
    @pytest.mark.asyncio
    async def test_successful_call(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_reply("Grounded answer"))

        client = _client(handler)
        try:
            reply = await client.generate("secret-key", "gemini-2.5-flash", PAYLOAD)
        finally:
            await client.aclose()

        assert reply == "Grounded answer"
        assert seen["url"].path == "/v1/models/gemini-2.5-flash:generateContent"
        assert seen["url"].params["key"] == "secret-key"
        assert seen["body"] == PAYLOAD
        assert client.call_count == 1

    @pytest.mark.asyncio
    async def test_upstream_404_becomes_502_with_details(self):
        def handler(request):
            return httpx.Response(404, text='{"error": {"message": "model not found"}}')

        client = _client(handler)
        try:
            with pytest.raises(UpstreamError) as exc_info:
                await client.generate("k", "missing-model", PAYLOAD)
        finally:
            await client.aclose()

        error = exc_info.value
        assert error.http_status == 502
        assert error.upstream_status == 404
        assert error.kind == ErrorKind.UPSTREAM
        assert error.to_response_body() == {
            "error": PROVIDER_ERROR,
            "details": '{"error": {"message": "model not found"}}',
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 500, 503])
    async def test_other_statuses_pass_through(self, status_code):
        client = _client(lambda request: httpx.Response(status_code, text="upstream says no"))
        try:
            with pytest.raises(UpstreamError) as exc_info:
                await client.generate("k", "m", PAYLOAD)
        finally:
            await client.aclose()

        assert exc_info.value.http_status == status_code
        assert exc_info.value.details == "upstream says no"

    @pytest.mark.asyncio
    async def test_empty_reply_is_502(self):
        client = _client(lambda request: httpx.Response(200, json={"candidates": []}))
        try:
            with pytest.raises(UpstreamError) as exc_info:
                await client.generate("k", "m", PAYLOAD)
        finally:
            await client.aclose()

        assert exc_info.value.http_status == 502
        assert exc_info.value.message == EMPTY_REPLY_ERROR

    @pytest.mark.asyncio
    async def test_non_json_body_is_502(self):
        client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        try:
            with pytest.raises(UpstreamError) as exc_info:
                await client.generate("k", "m", PAYLOAD)
        finally:
            await client.aclose()

        assert exc_info.value.http_status == 502
        assert exc_info.value.details == "<html>oops</html>"

    @pytest.mark.asyncio
    async def test_slow_upstream_is_cut_off_at_the_timeout(self):
        # Every byte arrives well inside the per-read limit; only a bound on
        # the whole request stops this one
        connections = []

        async def trickle(reader, writer):
            connections.append((asyncio.current_task(), writer))
            await reader.readuntil(b"\r\n\r\n")
            writer.write(b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\nContent-Length: 200\r\n\r\n")
            await writer.drain()
            while True:
                writer.write(b" ")
                await writer.drain()
                await asyncio.sleep(0.4)

        server = await asyncio.start_server(trickle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        client = GeminiClient(base_url=f"http://127.0.0.1:{port}/v1", timeout_seconds=1.0)
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            with pytest.raises(UpstreamError) as exc_info:
                await client.generate("k", "m", PAYLOAD)
            elapsed = loop.time() - started
        finally:
            await client.aclose()
            for task, writer in connections:
                task.cancel()
                writer.close()
            server.close()
            await server.wait_closed()

        assert elapsed < 2.0
        assert exc_info.value.http_status == 500
        assert exc_info.value.message == PROVIDER_ERROR
        assert "timed out after 1s" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_transport_timeout_is_500(self):
        def handler(request):
            raise httpx.ConnectTimeout("connect timed out", request=request)

        client = _client(handler)
        try:
            with pytest.raises(UpstreamError) as exc_info:
                await client.generate("k", "m", PAYLOAD)
        finally:
            await client.aclose()

        assert exc_info.value.http_status == 500
        assert "connect timed out" in exc_info.value.details
        assert isinstance(exc_info.value.original_error, httpx.TimeoutException)

    @pytest.mark.asyncio
    async def test_transport_failure_is_500(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        try:
            with pytest.raises(UpstreamError) as exc_info:
                await client.generate("k", "m", PAYLOAD)
        finally:
            await client.aclose()

        assert exc_info.value.http_status == 500
        assert exc_info.value.details == "connection refused"

    def test_model_name_is_quoted_in_the_path(self):
        client = GeminiClient(base_url="https://provider.test/v1/")
        assert client.endpoint_for("tuned/model x") == (
            "https://provider.test/v1/models/tuned%2Fmodel%20x:generateContent"
        )
