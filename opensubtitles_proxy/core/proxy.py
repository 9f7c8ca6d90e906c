"""Subtitle search and download operations on top of the OpenSubtitles API"""

import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import httpx

from ..utils.exceptions import FileFetchError, InvalidRequestError, UpstreamError
from ..utils.helpers import (
    DEFAULT_SUB_FORMAT, attachment_filename, is_valid_url, normalize_sub_format,
    parse_file_id, pick_param,
)
from .token_broker import TokenBroker
from .upstream import UpstreamClient, UpstreamResponse

logger = logging.getLogger(__name__)

# Query parameters forwarded to /subtitles, with the names accepted from clients
SEARCH_PARAMS: Dict[str, Tuple[str, ...]] = {
    "query": ("query",),
    "languages": ("languages", "langs"),
    "tmdb_id": ("tmdb_id",),
    "imdb_id": ("imdb_id",),
    "season_number": ("season_number",),
    "episode_number": ("episode_number",),
    "page": ("page",),
}

# At least one of these must be present for a search to make sense
SEARCH_KEYS = ("query", "tmdb_id", "imdb_id")

OS_MESSAGE_HEADER = "X-OpenSubtitles-Message"
DEFAULT_FILE_CONTENT_TYPE = "text/plain; charset=utf-8"
# Bytes of an upstream error body echoed back to the client
MAX_ERROR_TEXT = 500


class SubtitleFile:
    """A subtitle file being streamed from its signed link"""

    def __init__(self, response: httpx.Response, filename: str):
        self.response = response
        self.filename = filename

    @property
    def content_type(self) -> str:
        return self.response.headers.get("content-type") or DEFAULT_FILE_CONTENT_TYPE

    def iter_bytes(self):
        return self.response.aiter_bytes()

    async def close(self):
        await self.response.aclose()


class SubtitleProxy:
    """Forwards subtitle requests to OpenSubtitles"""

    def __init__(self, upstream: UpstreamClient, broker: TokenBroker):
        self.upstream = upstream
        self.broker = broker

    async def search(self, params: Mapping[str, Any], require_query: bool = True) -> Tuple[int, Any]:
        """Search subtitles, returning the upstream status and JSON body"""
        forwarded = {}
        for name, aliases in SEARCH_PARAMS.items():
            value = pick_param(params, aliases)
            if value:
                forwarded[name] = value

        if require_query and not any(forwarded.get(key) for key in SEARCH_KEYS):
            raise InvalidRequestError("Missing query")

        return await self._search(forwarded)

    async def search_passthrough(self, params: Sequence[Tuple[str, str]]) -> Tuple[int, Any]:
        """Search with the client query string forwarded unchanged"""
        return await self._search(list(params))

    async def _search(self, forwarded) -> Tuple[int, Any]:
        logger.info(f"Subtitle search: {forwarded}")
        response = await self.upstream.get("/subtitles", params=forwarded)

        if not response.ok:
            raise UpstreamError(response.message or "OpenSubtitles search failed",
                                status_code=response.status)

        data = response.json
        if data is None:
            data = {"raw": response.text}
        os_message = response.headers.get(OS_MESSAGE_HEADER)
        if os_message and isinstance(data, dict):
            data["__osMessage"] = os_message
        return response.status, data

    async def request_download(self, file_id: Any, sub_format: Optional[str] = None) -> Dict[str, Any]:
        """Ask OpenSubtitles for a temporary download link for ``file_id``"""
        payload: Dict[str, Any] = {"file_id": parse_file_id(file_id)}
        sub_format = normalize_sub_format(sub_format, default=None)
        if sub_format:
            payload["sub_format"] = sub_format

        logger.info(f"Download link request: {payload}")

        async def _download(token: str) -> UpstreamResponse:
            return await self.upstream.post(
                "/download",
                token=token,
                headers={"Content-Type": "application/json"},
                body=payload,
            )

        response = await self.broker.call_with_token(_download)
        if not response.ok:
            raise UpstreamError(response.message or "OpenSubtitles download error",
                                status_code=response.status,
                                details={"body": response.text[:MAX_ERROR_TEXT]})

        data = response.json
        if not isinstance(data, dict):
            raise UpstreamError("OpenSubtitles download: unexpected response body", status_code=502)
        return data

    async def open_subtitle_file(self, file_id: Any, sub_format: Optional[str] = DEFAULT_SUB_FORMAT) -> SubtitleFile:
        """Resolve a download link and start streaming the file behind it"""
        sub_format = normalize_sub_format(sub_format)
        data = await self.request_download(file_id, sub_format)

        link = data.get("link")
        if not link:
            raise UpstreamError("No link returned by API", status_code=502)

        filename = attachment_filename(data.get("file_name"), sub_format)
        return await self._open_link(str(link), filename)

    async def open_signed_link(self, url: str, sub_format: Optional[str] = DEFAULT_SUB_FORMAT) -> SubtitleFile:
        """Stream an already signed download link"""
        if not is_valid_url(url):
            raise InvalidRequestError("Invalid url")
        sub_format = normalize_sub_format(sub_format)
        return await self._open_link(url, attachment_filename(None, sub_format))

    async def fetch_subtitle_text(self, file_id: Any, sub_format: Optional[str] = DEFAULT_SUB_FORMAT) -> str:
        """Download the whole subtitle file as text"""
        subtitle = await self.open_subtitle_file(file_id, sub_format)
        try:
            await subtitle.response.aread()
            return subtitle.response.text
        finally:
            await subtitle.close()

    async def _open_link(self, url: str, filename: str) -> SubtitleFile:
        logger.info(f"Fetching subtitle file: {filename}")
        response = await self.upstream.open_stream(url)
        if response.status_code >= 400:
            try:
                await response.aread()
                text = response.text.strip()[:MAX_ERROR_TEXT]
            finally:
                await response.aclose()
            logger.warning(f"Subtitle file fetch failed with {response.status_code}")
            raise FileFetchError(text or "Subtitle file download failed",
                                 status_code=response.status_code)
        return SubtitleFile(response, filename)
