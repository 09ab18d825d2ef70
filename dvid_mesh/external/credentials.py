"""
Credentials providers for DVID requests.

A provider owns the token shared by every in-flight request. The transport only
ever calls ``get()`` and ``refresh()``; refresh coalescing and pacing are the
provider's job.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Awaitable, Dict, Optional

import aiohttp

from ..core.exceptions import CredentialsRefreshError
from ..core.utils import get_logger
from .session import get_aiohttp_session

logger = get_logger(__name__)


class CredentialsProvider(ABC):
    """
    Abstract source of the DVID bearer token.

    An empty string is a valid credential: it tells the transport to fall
    back to cookies.
    """

    @abstractmethod
    async def get(self) -> str:
        """
        Return the current credential, fetching one first if needed.

        Returns:
            Token string (possibly empty)
        """
        pass

    @abstractmethod
    async def refresh(self, invalid: Optional[str] = None) -> str:
        """
        Obtain a new credential after ``invalid`` was rejected by the server.

        Args:
            invalid: The credential the failed request carried

        Returns:
            The fresh credential

        Raises:
            CredentialsRefreshError: If no new credential can be obtained
        """
        pass


class StaticCredentialsProvider(CredentialsProvider):
    """Fixed token from configuration. Cannot be refreshed."""

    def __init__(self, token: str = ""):
        self.token = token

    async def get(self) -> str:
        return self.token

    async def refresh(self, invalid: Optional[str] = None) -> str:
        raise CredentialsRefreshError("Static credentials cannot be refreshed")


class RefreshingCredentialsProvider(CredentialsProvider):
    """
    Provider that fetches tokens on demand and coalesces refreshes.

    Concurrent callers of ``refresh()`` share one in-flight refresh task.
    Consecutive refreshes are spaced at least ``min_refresh_interval`` apart so
    a server that keeps rejecting tokens cannot drive a tight loop.
    """

    def __init__(self, initial_token: Optional[str] = None,
                 min_refresh_interval: float = 0.5,
                 max_fetch_attempts: int = 3):
        """
        Initialize provider.

        Args:
            initial_token: Token to start from (None fetches on first use)
            min_refresh_interval: Minimum seconds between two refreshes
            max_fetch_attempts: Token fetch attempts per refresh
        """
        self._token = initial_token
        self._refresh_task: Optional[asyncio.Future] = None
        self._last_refresh = 0.0
        self.min_refresh_interval = min_refresh_interval
        self.max_fetch_attempts = max_fetch_attempts
        self.refresh_count = 0

    @abstractmethod
    async def fetch_token(self) -> str:
        """Fetch a brand new token from the issuing service."""
        pass

    async def get(self) -> str:
        if self._token is None:
            return await self.refresh(None)
        return self._token

    async def refresh(self, invalid: Optional[str] = None) -> str:
        # Another waiter already replaced the token that failed
        if (invalid is not None and self._token is not None
                and self._token != invalid and self._refresh_task is None):
            return self._token

        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._do_refresh())
        # Shielded so one cancelled waiter doesn't abort the shared refresh
        return await asyncio.shield(self._refresh_task)

    async def _do_refresh(self) -> str:
        try:
            # Rate limiting
            time_since_last = time.monotonic() - self._last_refresh
            if time_since_last < self.min_refresh_interval:
                await asyncio.sleep(self.min_refresh_interval - time_since_last)

            last_error: Optional[BaseException] = None
            for attempt in range(self.max_fetch_attempts):
                try:
                    token = await self.fetch_token()
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    last_error = e
                    logger.warning(
                        f"Token fetch attempt {attempt + 1}/{self.max_fetch_attempts} failed: {e}"
                    )
                    await asyncio.sleep(self.min_refresh_interval * (2 ** attempt))
                    continue

                self._token = token
                self.refresh_count += 1
                logger.info(f"Credentials refreshed (#{self.refresh_count})")
                return token

            raise CredentialsRefreshError(
                f"Token refresh failed after {self.max_fetch_attempts} attempts"
            ) from last_error
        finally:
            self._last_refresh = time.monotonic()
            self._refresh_task = None


class DVIDTokenCredentialsProvider(RefreshingCredentialsProvider):
    """
    Fetches tokens from the DVID token endpoint using the session cookies.

    The endpoint answers with the raw token as the response body.
    """

    def __init__(self, token_url: str,
                 cookies: Optional[Dict[str, str]] = None,
                 session_getter: Callable[[], Awaitable[aiohttp.ClientSession]] = get_aiohttp_session,
                 timeout: float = 30.0,
                 **kwargs):
        super().__init__(**kwargs)
        self.token_url = token_url
        self.cookies = dict(cookies or {})
        self.session_getter = session_getter
        self.timeout = timeout

    async def fetch_token(self) -> str:
        session = await self.session_getter()
        async with session.get(
            self.token_url,
            cookies=self.cookies,
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as response:
            response.raise_for_status()
            token = (await response.text()).strip()
        logger.debug(f"Fetched token from {self.token_url}")
        return token


def create_credentials_provider(config) -> CredentialsProvider:
    """
    Build the provider matching a ``Config``.

    Plain http servers get a static provider since credentials are never
    applied to them. For https servers the configured ``auth_token`` (possibly
    empty, meaning cookies) is used until the server rejects it, after which
    tokens come from the token endpoint.
    """
    if not config.server_url.startswith("https"):
        return StaticCredentialsProvider(config.auth_token)
    return DVIDTokenCredentialsProvider(
        token_url=config.resolved_token_url,
        cookies=config.cookies,
        timeout=config.request_timeout,
        initial_token=config.auth_token,
        min_refresh_interval=config.refresh_backoff,
    )
