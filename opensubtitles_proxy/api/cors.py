"""CORS headers for browser clients"""

import logging

from fastapi import FastAPI, Request, Response

logger = logging.getLogger(__name__)

ALLOW_METHODS = "GET,POST,OPTIONS"
ALLOW_HEADERS = "Content-Type,Authorization,Api-Key,X-User-Agent,User-Agent,Accept"
MAX_AGE = "86400"


def cors_headers(allow_origin: str = "*") -> dict:
    return {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
        "Access-Control-Max-Age": MAX_AGE,
    }


def install_cors(app: FastAPI, allow_origin: str = "*"):
    """Answer every preflight with 204 and add CORS headers to every response"""
    headers = cors_headers(allow_origin)

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=headers)
        response = await call_next(request)
        response.headers.update(headers)
        return response
