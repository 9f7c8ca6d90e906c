"""FastAPI routes for the OpenSubtitles proxy"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from .. import __version__
from ..core.proxy import SubtitleFile, SubtitleProxy
from ..utils.helpers import content_disposition, pick_param
from .models import DownloadRequest, HealthResponse, RootResponse

logger = logging.getLogger(__name__)

SERVICE_NAME = "opensubtitles-proxy"
ROUTES = ["/search", "/download", "/download-file", "/health"]

_start_time = time.time()


def get_proxy(request: Request) -> SubtitleProxy:
    """Get the proxy created at startup"""
    return request.app.state.proxy


async def stream_subtitle(subtitle: SubtitleFile) -> StreamingResponse:
    """Stream a subtitle file to the client as an attachment"""
    try:
        return StreamingResponse(
            subtitle.iter_bytes(),
            status_code=200,
            media_type=subtitle.content_type,
            headers={"Content-Disposition": content_disposition(subtitle.filename)},
            background=BackgroundTask(subtitle.close),
        )
    except Exception:
        # The background close is never attached, release the upstream here
        await subtitle.close()
        raise


router = APIRouter(tags=["opensubtitles-proxy"])


@router.get("/", response_model=RootResponse)
async def root():
    """Service info"""
    return RootResponse(service=SERVICE_NAME, version=__version__, routes=ROUTES)


@router.get("/health", response_model=HealthResponse)
async def health(proxy: SubtitleProxy = Depends(get_proxy)):
    """Health check endpoint"""
    return HealthResponse(
        service=SERVICE_NAME,
        version=__version__,
        uptime=time.time() - _start_time,
        now=datetime.now(timezone.utc).isoformat(),
        token_cached=proxy.broker.cached_token() is not None,
    )


@router.get("/search")
async def search(request: Request, proxy: SubtitleProxy = Depends(get_proxy)):
    """Search subtitles: query, languages, tmdb_id, imdb_id, season_number, episode_number, page"""
    status, data = await proxy.search(request.query_params)
    return JSONResponse(content=data, status_code=status)


@router.post("/download")
async def download(body: DownloadRequest, proxy: SubtitleProxy = Depends(get_proxy)):
    """Request a temporary download link; returns the upstream link/file_name unchanged"""
    return await proxy.request_download(body.file_id, body.sub_format)


@router.get("/download-file")
async def download_file(request: Request, proxy: SubtitleProxy = Depends(get_proxy)):
    """Stream a subtitle file

    Takes ``file_id`` and ``sub_format`` (or ``format``). An already signed
    ``url`` is accepted instead of ``file_id`` for older clients.
    """
    params = request.query_params
    file_id = pick_param(params, ("file_id",))
    legacy_url: Optional[str] = pick_param(params, ("url",))
    sub_format = pick_param(params, ("sub_format", "format")) or None

    if not file_id and legacy_url:
        subtitle = await proxy.open_signed_link(legacy_url, sub_format)
    else:
        subtitle = await proxy.open_subtitle_file(file_id, sub_format)
    return await stream_subtitle(subtitle)
