"""Conversion of errors into JSON envelopes"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..utils.exceptions import FileFetchError, NotFoundError, OpenSubtitlesProxyError
from .models import ErrorResponse

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, details: Optional[Dict[str, Any]] = None,
                   headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    body = ErrorResponse(error=message, message=message, status=status_code, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


def install_error_handlers(app: FastAPI):
    """Register handlers that turn every failure into an error envelope"""

    @app.exception_handler(OpenSubtitlesProxyError)
    async def proxy_error_handler(request: Request, exc: OpenSubtitlesProxyError):
        if isinstance(exc, FileFetchError):
            # No partial file, just the upstream status and a short text
            return PlainTextResponse(exc.message, status_code=exc.status_code)
        log = logger.warning if exc.status_code < 500 else logger.error
        log(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc.message}")
        return error_response(exc.status_code, exc.message, exc.details)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        if exc.status_code == 404:
            return await proxy_error_handler(request, NotFoundError(message, details={"path": request.url.path}))
        return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        messages = [f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}" for e in errors]
        return error_response(400, " | ".join(messages) or "Invalid request")

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unexpected error in {request.method} {request.url.path}")
        # Runs outside the CORS middleware, so the headers are added here
        return error_response(500, "Internal server error", headers=getattr(app.state, "cors_headers", None))
