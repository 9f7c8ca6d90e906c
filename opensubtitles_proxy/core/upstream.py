"""Async HTTP client for the OpenSubtitles REST API"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..utils.exceptions import TransportError
from ..utils.helpers import build_url, extract_message

logger = logging.getLogger(__name__)


# Connection pool limits for the shared client
MAX_CONNECTIONS = 20
MAX_KEEPALIVE_CONNECTIONS = 10


class UpstreamResponse:
    """Buffered upstream response"""

    def __init__(self, status: int, headers: Mapping[str, str], body: bytes = b""):
        self.status = status
        self.headers = headers
        self.body = body
        self._json: Any = None
        self._json_parsed = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def json(self) -> Any:
        """Decoded JSON body, or None when the body is not JSON"""
        if not self._json_parsed:
            self._json_parsed = True
            try:
                self._json = json.loads(self.body) if self.body else None
            except ValueError:
                self._json = None
        return self._json

    @property
    def message(self) -> str:
        return extract_message(self.json, self.text)

    def __repr__(self):
        return f"UpstreamResponse(status={self.status}, size={len(self.body)})"


class UpstreamClient:
    """Issues calls against the OpenSubtitles API with the proxy's credentials"""

    def __init__(self, base_url: str, api_key: str, user_agent: str,
                 timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.user_agent = user_agent
        self.timeout = timeout
        # API headers are added per call so the signed file links never see them
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(
                max_connections=MAX_CONNECTIONS,
                max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
            ),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            transport=transport,
        )

    def api_headers(self, token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Api-Key": self.api_key,
            "User-Agent": self.user_agent,
            "X-User-Agent": self.user_agent,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def call(self, path: str, method: str = "GET", headers: Optional[Mapping[str, str]] = None,
                   body: Any = None, params: Any = None,
                   token: Optional[str] = None) -> UpstreamResponse:
        """Call an API path and buffer the whole response

        ``body`` is sent as JSON when given.
        """
        url = build_url(self.base_url, path)
        request_headers = self.api_headers(token)
        if headers:
            request_headers.update(headers)

        kwargs: Dict[str, Any] = {"headers": request_headers}
        if params:
            kwargs["params"] = params
        if body is not None:
            kwargs["json"] = body

        logger.debug(f"Making {method.upper()} request to: {url}")
        try:
            response = await self.client.request(method.upper(), url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Upstream timeout on {method.upper()} {path}: {e}")
            raise TransportError(f"Upstream timeout: {e}", status_code=504)
        except httpx.HTTPError as e:
            logger.error(f"Upstream connection error on {method.upper()} {path}: {e}")
            raise TransportError(f"Upstream connection error: {e}")

        result = UpstreamResponse(response.status_code, response.headers, response.content)
        if not result.ok:
            logger.warning(f"Upstream {method.upper()} {path} returned {result.status}")
        return result

    async def get(self, path: str, **kwargs) -> UpstreamResponse:
        return await self.call(path, "GET", **kwargs)

    async def post(self, path: str, **kwargs) -> UpstreamResponse:
        return await self.call(path, "POST", **kwargs)

    async def open_stream(self, url: str) -> httpx.Response:
        """Start fetching an absolute URL without buffering the body

        The caller owns the returned response and must ``aclose()`` it.
        """
        request = self.client.build_request("GET", url)
        try:
            return await self.client.send(request, stream=True)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout fetching subtitle file: {e}")
            raise TransportError(f"Subtitle file timeout: {e}", status_code=504)
        except httpx.HTTPError as e:
            logger.error(f"Error fetching subtitle file: {e}")
            raise TransportError(f"Subtitle file connection error: {e}")

    async def close(self):
        """Close the client and release pooled connections"""
        await self.client.aclose()
        logger.info("Closed upstream HTTP client")
