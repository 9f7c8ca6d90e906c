"""Pydantic models for API requests and responses"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class DownloadRequest(BaseModel):
    """Request model for the download link endpoints"""
    file_id: Optional[Union[int, str]] = Field(None, description="OpenSubtitles file id")
    sub_format: Optional[str] = Field(None, description="Subtitle format, e.g. 'srt' or 'vtt'")


class RootResponse(BaseModel):
    ok: bool = True
    service: str
    version: str
    routes: List[str]


class HealthResponse(BaseModel):
    """Response model for health check"""
    ok: bool = True
    status: str = "healthy"
    service: str
    version: str
    uptime: float
    now: str
    token_cached: bool = False


class ErrorResponse(BaseModel):
    """Response model for errors"""
    error: str
    message: str
    status: int
    details: Optional[Dict[str, Any]] = None
