"""Shared bearer token cache and login coordination

One ``TokenBroker`` lives for the whole process. Concurrent requests that need
a token while none is cached all wait on the same login task, and login
attempts are spaced out so the upstream does not throttle us.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from ..config import DEFAULT_LOGIN_MIN_INTERVAL, DEFAULT_TOKEN_TTL_SECONDS
from ..utils.exceptions import AuthError, MissingCredentialsError
from .upstream import UpstreamClient, UpstreamResponse

logger = logging.getLogger(__name__)

UNAUTHORIZED = 401


class TokenState:
    """Mutable token cache owned by a single broker"""

    def __init__(self):
        self.token: Optional[str] = None
        self.acquired_at: Optional[float] = None
        self.last_attempt_at: Optional[float] = None
        self.in_flight: Optional[asyncio.Future] = None

    def clear(self):
        self.token = None
        self.acquired_at = None

    def __repr__(self):
        return (f"TokenState(cached={self.token is not None}, acquired_at={self.acquired_at}, "
                f"last_attempt_at={self.last_attempt_at}, in_flight={self.in_flight is not None})")


class TokenBroker:
    """Hands out the upstream bearer token, logging in when needed"""

    def __init__(self, upstream: UpstreamClient, username: str, password: str,
                 token_ttl: float = DEFAULT_TOKEN_TTL_SECONDS,
                 min_login_interval: float = DEFAULT_LOGIN_MIN_INTERVAL,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.upstream = upstream
        self.username = username
        self.password = password
        self.token_ttl = token_ttl
        self.min_login_interval = min_login_interval
        self.state = TokenState()
        self._clock = clock
        self._sleep = sleep

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    def cached_token(self) -> Optional[str]:
        """Return the cached token if it is still inside its validity window"""
        state = self.state
        if state.token is None or state.acquired_at is None:
            return None
        if self._clock() - state.acquired_at >= self.token_ttl:
            logger.info("Cached token expired")
            state.clear()
            return None
        return state.token

    async def acquire_token(self) -> str:
        """Return a valid token, logging in at most once for all concurrent callers

        Raises:
            MissingCredentialsError: no username/password configured
            AuthError: the upstream rejected the login
            TransportError: the upstream could not be reached
        """
        token = self.cached_token()
        if token is not None:
            logger.debug("Using cached token")
            return token

        if not self.has_credentials:
            raise MissingCredentialsError("OS_USERNAME/OS_PASSWORD are required for downloads")

        task = self.state.in_flight
        if task is None:
            task = asyncio.ensure_future(self._login())
            task.add_done_callback(self._login_done)
            self.state.in_flight = task
        else:
            logger.debug("Login already in progress, waiting for it")

        # A cancelled caller must not cancel the login shared with the others
        return await asyncio.shield(task)

    def invalidate(self, token: Optional[str] = None):
        """Forget the cached token

        With ``token`` given, only clear it if it is still the cached one, so a
        stale failure cannot discard a token obtained in the meantime.
        """
        state = self.state
        if state.token is None:
            return
        if token is not None and state.token != token:
            return
        logger.info("Invalidating cached token")
        state.clear()

    async def call_with_token(self,
                              operation: Callable[[str], Awaitable[UpstreamResponse]]) -> UpstreamResponse:
        """Run ``operation(token)``, re-logging in and retrying once on HTTP 401"""
        token = await self.acquire_token()
        response = await operation(token)
        if response.status != UNAUTHORIZED:
            return response

        logger.warning("Upstream rejected the bearer token, logging in again")
        self.invalidate(token)
        token = await self.acquire_token()
        response = await operation(token)
        if response.status == UNAUTHORIZED:
            logger.error("Upstream rejected a freshly acquired token")
            self.invalidate(token)
        return response

    async def _login(self) -> str:
        state = self.state
        if state.last_attempt_at is not None:
            wait = self.min_login_interval - (self._clock() - state.last_attempt_at)
            if wait > 0:
                logger.debug(f"Login rate limiting: sleeping for {wait:.2f} seconds")
                await self._sleep(wait)

        state.last_attempt_at = self._clock()
        state.clear()
        logger.info("Logging in to OpenSubtitles")

        response = await self.upstream.post(
            "/login",
            headers={"Content-Type": "application/json"},
            body={"username": self.username, "password": self.password},
        )

        if not response.ok:
            message = response.message or "login rejected"
            logger.error(f"OpenSubtitles login failed ({response.status}): {message}")
            raise AuthError(
                f"OpenSubtitles login failed ({response.status}): {message}",
                status_code=response.status,
            )

        data = response.json if isinstance(response.json, dict) else {}
        token = data.get("token")
        if not token and isinstance(data.get("data"), dict):
            token = data["data"].get("token")
        if not token:
            logger.error("OpenSubtitles login response did not contain a token")
            raise AuthError("OpenSubtitles login: token missing from response", status_code=502)

        state.token = str(token)
        state.acquired_at = self._clock()
        logger.info("Logged in to OpenSubtitles, token cached")
        return state.token

    def _login_done(self, task: asyncio.Future):
        if self.state.in_flight is task:
            self.state.in_flight = None
        # Mark the exception as retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()
