import asyncio
import json
from typing import List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from main import create_app
from opensubtitles_proxy.config import ProxySettings
from opensubtitles_proxy.core.upstream import UpstreamResponse

API_BASE = "https://api.test/api/v1"
FILE_HOST = "dl.test"
SRT_BODY = b"1\n00:00:01,000 --> 00:00:02,000\nHello\n"


class FakeClock:
    """Manual monotonic clock; ``sleep`` advances it instead of waiting"""

    def __init__(self, now: float = 1000.0):
        self.now = now
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeUpstream:
    """Stands in for UpstreamClient in broker tests"""

    def __init__(self, clock: Optional[FakeClock] = None, status: int = 200, body=None, error=None):
        self.clock = clock
        self.status = status
        self.body = body
        self.error = error
        self.login_calls = 0
        self.login_times: List[float] = []
        self.release: Optional[asyncio.Event] = None

    async def post(self, path, headers=None, body=None, **kwargs):
        assert path == "/login"
        self.login_calls += 1
        if self.clock is not None:
            self.login_times.append(self.clock())
        await asyncio.sleep(0)
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        payload = self.body if self.body is not None else {"token": f"token-{self.login_calls}"}
        return UpstreamResponse(self.status, {}, json.dumps(payload).encode())


class FakeOpenSubtitles:
    """In-memory OpenSubtitles API served through httpx.MockTransport"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.logins = 0
        self.valid_tokens = set()
        self.login_status = 200
        self.search_status = 200
        self.search_body = {"total_count": 1, "data": [{"id": "1", "type": "subtitle"}]}
        self.search_headers = {}
        self.download_body = {
            "link": f"https://{FILE_HOST}/file/12345",
            "file_name": "The.Matrix.1999.srt",
            "requests": 3,
            "remaining": 97,
        }
        self.download_error: Optional[Exception] = None
        self.file_status = 200
        self.file_body = SRT_BODY
        self.file_headers = {"content-type": "application/x-subrip"}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == FILE_HOST:
            return httpx.Response(self.file_status, content=self.file_body, headers=self.file_headers)

        if path.endswith("/login"):
            self.logins += 1
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={"message": "Invalid credentials"})
            token = f"token-{self.logins}"
            self.valid_tokens.add(token)
            return httpx.Response(200, json={"token": token, "status": 200})

        if path.endswith("/subtitles"):
            if self.search_status != 200:
                return httpx.Response(self.search_status, json={"message": "Throttle limit reached"})
            return httpx.Response(200, json=self.search_body, headers=self.search_headers)

        if path.endswith("/download"):
            if self.download_error is not None:
                raise self.download_error
            auth = request.headers.get("authorization", "")
            if auth.replace("Bearer ", "") not in self.valid_tokens:
                return httpx.Response(401, json={"message": "You must be logged in"})
            return httpx.Response(200, json=self.download_body)

        return httpx.Response(404, json={"message": "unknown"})


def make_settings(**overrides) -> ProxySettings:
    values = dict(
        api_key="test-key",
        username="user",
        password="secret",
        user_agent="proxy-tests v1",
        api_base=API_BASE,
        login_min_interval=0,
    )
    values.update(overrides)
    return ProxySettings(**values)


@pytest.fixture
def fake_api():
    return FakeOpenSubtitles()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def client(fake_api, settings):
    app = create_app(settings, transport=fake_api.transport)
    with TestClient(app) as test_client:
        yield test_client
