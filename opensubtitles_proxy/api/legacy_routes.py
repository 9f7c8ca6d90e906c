"""
Routes of the first standalone proxy, kept under /os for existing clients
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ..core.proxy import SubtitleProxy
from .models import DownloadRequest
from .routes import get_proxy

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/os", tags=["legacy"])


@router.get("/health")
async def legacy_health():
    return {"ok": True}


@router.get("/subtitles")
async def legacy_subtitles(request: Request, proxy: SubtitleProxy = Depends(get_proxy)):
    """Search with the whole query string passed through"""
    status, data = await proxy.search_passthrough(request.query_params.multi_items())
    return JSONResponse(content=data, status_code=status)


@router.post("/download")
async def legacy_download(body: DownloadRequest, proxy: SubtitleProxy = Depends(get_proxy)):
    """
    Download a subtitle and return its text

    Args:
        body: file_id and optional sub_format (defaults to srt)

    Returns:
        The raw subtitle text; clients convert it to VTT themselves
    """
    logger.info(f"Legacy download request for file {body.file_id}")
    text = await proxy.fetch_subtitle_text(body.file_id, body.sub_format)
    return PlainTextResponse(text)
