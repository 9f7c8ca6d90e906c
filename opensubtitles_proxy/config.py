"""Environment configuration for the OpenSubtitles proxy"""

import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from . import __version__
from .utils.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.opensubtitles.com/api/v1"
DEFAULT_USER_AGENT = f"opensubtitles-proxy v{__version__}"
DEFAULT_PORT = 8787

# Tokens are JWTs valid for about a day; refresh well before that
DEFAULT_TOKEN_TTL_SECONDS = 8 * 60 * 60
# OpenSubtitles allows 1 login per second
DEFAULT_LOGIN_MIN_INTERVAL = 1.1
DEFAULT_REQUEST_TIMEOUT = 30.0
# Level names uvicorn accepts
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "TRACE")


class ProxySettings(BaseModel):
    """Runtime settings, normally read from the process environment"""
    api_key: str = ""
    username: str = ""
    password: str = ""
    user_agent: str = DEFAULT_USER_AGENT
    api_base: str = DEFAULT_API_BASE
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    token_ttl: float = Field(DEFAULT_TOKEN_TTL_SECONDS, gt=0)
    login_min_interval: float = Field(DEFAULT_LOGIN_MIN_INTERVAL, ge=0)
    request_timeout: float = Field(DEFAULT_REQUEST_TIMEOUT, gt=0)
    cors_allow_origin: str = "*"
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level == "WARN":
            level = "WARNING"
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {value!r}")
        return level

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def api_base_url(self) -> str:
        return self.api_base.rstrip("/")

    def validate_required(self) -> None:
        """Fail fast when the mandatory API key is missing"""
        if not self.api_key:
            raise ConfigError("OS_API_KEY is not set")
        if not self.has_credentials:
            logger.warning("OS_USERNAME/OS_PASSWORD not set: download routes will fail")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProxySettings":
        env = os.environ if environ is None else environ

        def _get(name: str, default: str = "") -> str:
            return env.get(name, default).strip()

        try:
            return cls(
                api_key=_get("OS_API_KEY"),
                username=_get("OS_USERNAME"),
                # Passwords are used as-is
                password=env.get("OS_PASSWORD", ""),
                user_agent=_get("OS_USER_AGENT") or _get("OS_APP_UA") or DEFAULT_USER_AGENT,
                api_base=_get("OS_API_BASE") or DEFAULT_API_BASE,
                host=_get("HOST") or "0.0.0.0",
                port=int(_get("PORT") or DEFAULT_PORT),
                token_ttl=float(_get("OS_TOKEN_TTL_SECONDS") or DEFAULT_TOKEN_TTL_SECONDS),
                login_min_interval=float(_get("OS_LOGIN_MIN_INTERVAL") or DEFAULT_LOGIN_MIN_INTERVAL),
                request_timeout=float(_get("OS_REQUEST_TIMEOUT") or DEFAULT_REQUEST_TIMEOUT),
                cors_allow_origin=_get("CORS_ALLOW_ORIGIN") or "*",
                log_level=(_get("LOG_LEVEL") or "INFO").upper(),
            )
        except ValueError as e:
            # pydantic.ValidationError is a ValueError too
            raise ConfigError(f"Invalid configuration: {e}")
