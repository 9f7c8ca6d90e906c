import asyncio
import json

import httpx
import pytest

from opensubtitles_proxy.core.upstream import UpstreamClient, UpstreamResponse
from opensubtitles_proxy.utils.exceptions import TransportError

API_BASE = "https://api.test/api/v1/"


def _client(handler):
    return UpstreamClient(API_BASE, "test-key", "proxy-tests v1", transport=httpx.MockTransport(handler))


def test_call_sends_api_headers_and_json_body():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"link": "x"})

    async def scenario():
        client = _client(handler)
        try:
            return await client.post("/download", token="abc", body={"file_id": 1})
        finally:
            await client.close()

    response = asyncio.run(scenario())

    assert response.ok
    assert response.json == {"link": "x"}
    assert seen["url"] == "https://api.test/api/v1/download"
    assert seen["headers"]["api-key"] == "test-key"
    assert seen["headers"]["x-user-agent"] == "proxy-tests v1"
    assert seen["headers"]["user-agent"] == "proxy-tests v1"
    assert seen["headers"]["authorization"] == "Bearer abc"
    assert seen["body"] == {"file_id": 1}


def test_call_without_token_has_no_authorization():
    seen = {}

    def handler(request):
        seen["headers"] = request.headers
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={})

    async def scenario():
        client = _client(handler)
        try:
            await client.get("/subtitles", params={"query": "matrix"})
        finally:
            await client.close()

    asyncio.run(scenario())
    assert "authorization" not in seen["headers"]
    assert seen["params"] == {"query": "matrix"}


def test_file_links_do_not_receive_api_key():
    seen = {}

    def handler(request):
        seen["headers"] = request.headers
        return httpx.Response(200, content=b"subtitle")

    async def scenario():
        client = _client(handler)
        try:
            response = await client.open_stream("https://dl.test/file/1")
            body = await response.aread()
            await response.aclose()
            return body
        finally:
            await client.close()

    assert asyncio.run(scenario()) == b"subtitle"
    assert "api-key" not in seen["headers"]


def test_connection_error_becomes_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        client = _client(handler)
        try:
            await client.get("/subtitles")
        finally:
            await client.close()

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.status_code == 502


def test_timeout_becomes_transport_error_with_504():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    async def scenario():
        client = _client(handler)
        try:
            await client.get("/subtitles")
        finally:
            await client.close()

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.status_code == 504


def test_response_message_and_non_json_body():
    response = UpstreamResponse(503, {}, b"<html>down</html>")
    assert not response.ok
    assert response.json is None
    assert response.message == "<html>down</html>"

    response = UpstreamResponse(429, {}, b'{"message": "Throttle limit reached"}')
    assert response.message == "Throttle limit reached"
