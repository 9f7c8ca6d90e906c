"""Main FastAPI application for the OpenSubtitles proxy"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI

from opensubtitles_proxy import __version__, __description__
from opensubtitles_proxy.api.cors import cors_headers, install_cors
from opensubtitles_proxy.api.errors import install_error_handlers
from opensubtitles_proxy.api.legacy_routes import router as legacy_router
from opensubtitles_proxy.api.routes import router
from opensubtitles_proxy.config import ProxySettings
from opensubtitles_proxy.core.proxy import SubtitleProxy
from opensubtitles_proxy.core.token_broker import TokenBroker
from opensubtitles_proxy.core.upstream import UpstreamClient

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.DEBUG),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(settings: Optional[ProxySettings] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """Build the application

    ``transport`` replaces the network layer of the upstream client.
    """
    settings = settings or ProxySettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        # Startup
        settings.validate_required()
        upstream = UpstreamClient(
            base_url=settings.api_base_url,
            api_key=settings.api_key,
            user_agent=settings.user_agent,
            timeout=settings.request_timeout,
            transport=transport,
        )
        broker = TokenBroker(
            upstream,
            settings.username,
            settings.password,
            token_ttl=settings.token_ttl,
            min_login_interval=settings.login_min_interval,
        )
        app.state.proxy = SubtitleProxy(upstream, broker)
        logger.info(f"Starting OpenSubtitles proxy against {settings.api_base_url}")
        yield
        # Shutdown
        logger.info("Shutting down OpenSubtitles proxy")
        await upstream.close()

    app = FastAPI(
        title="OpenSubtitles Proxy",
        description=__description__,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url=None
    )
    app.state.settings = settings
    app.state.cors_headers = cors_headers(settings.cors_allow_origin)

    install_cors(app, settings.cors_allow_origin)
    install_error_handlers(app)

    app.include_router(router)
    app.include_router(legacy_router)
    return app


app = create_app()
configure_logging(app.state.settings.log_level)


if __name__ == "__main__":
    settings = app.state.settings
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
