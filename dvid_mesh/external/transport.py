"""
Credential-aware HTTP transport for DVID.

Every remote call made by the mesh, skeleton, annotation and volume sources goes
through ``CredentialedTransport.execute``. One call is a small state machine:

    attempt -> success                      -> return body
            -> 401/403 (unauthorized)       -> refresh credential -> attempt
            -> 504/timeout (transient)      -> backoff sleep      -> attempt
            -> anything else (fatal)        -> raise TransportFatal

A wait (refresh or backoff) always precedes a re-attempt, and the cancellation
token is raced against every wait.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

import aiohttp

from ..core.cancellation import CancellationToken, ensure_token
from ..core.exceptions import (
    CredentialsRefreshError,
    DecodeMalformed,
    TransportError,
    TransportFatal,
    TransportTransient,
    TransportUnauthorized,
)
from ..core import metrics
from ..core.utils import get_logger, PerformanceTimer
from .credentials import CredentialsProvider
from .session import get_aiohttp_session

logger = get_logger(__name__)


class ResponseType(Enum):
    """How the response body is handed back to the caller."""
    BINARY = "arraybuffer"
    JSON = "json"
    TEXT = "text"


@dataclass(frozen=True)
class HttpCall:
    """
    One remote call.

    Attributes:
        method: HTTP verb (GET, POST, DELETE)
        url: Absolute URL
        payload: Request body, already serialized
        response_type: Decoding applied to a successful response body
    """
    method: str
    url: str
    payload: Optional[str] = None
    response_type: ResponseType = ResponseType.JSON

    @classmethod
    def get(cls, url: str, response_type: ResponseType = ResponseType.JSON) -> "HttpCall":
        return cls("GET", url, None, response_type)

    @classmethod
    def post_json(cls, url: str, body: Any,
                  response_type: ResponseType = ResponseType.TEXT) -> "HttpCall":
        return cls("POST", url, json.dumps(body), response_type)


def apply_credentials(url: str, token: str,
                      cookies: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Build the credential part of the request options.

    Secure targets get either a bearer header (non-empty token) or the ambient
    cookies (empty token), never both. Plain http targets get neither.

    Args:
        url: Target URL
        token: Current credential
        cookies: Ambient cookies used when no token is held

    Returns:
        Keyword arguments for ``ClientSession.request``
    """
    options: Dict[str, Any] = {"headers": {}}
    if url.startswith("https"):
        if token:
            options["headers"]["Authorization"] = f"Bearer {token}"
        else:
            options["cookies"] = dict(cookies or {})
    return options


def classify_status(status: int) -> Type[TransportError]:
    """
    Map a non-success status to its error class.

    Args:
        status: HTTP status code

    Returns:
        TransportUnauthorized for 401/403, TransportTransient for 504,
        TransportFatal otherwise
    """
    if status in (401, 403):
        return TransportUnauthorized
    if status == 504:
        return TransportTransient
    return TransportFatal


class CredentialedTransport:
    """
    Executes HTTP calls with credentials, retries and cancellation.

    The transport holds no lock and no token of its own; it asks the injected
    credentials provider for the current credential before the first attempt
    and after every refresh.
    """

    def __init__(self, credentials_provider: CredentialsProvider,
                 session: Optional[aiohttp.ClientSession] = None,
                 cookies: Optional[Dict[str, str]] = None,
                 request_timeout: float = 60.0,
                 max_transient_retries: Optional[int] = 8,
                 retry_base_delay: float = 0.25,
                 retry_max_delay: float = 16.0,
                 max_auth_refreshes: int = 3,
                 sleep: Optional[Callable[[float, CancellationToken], Awaitable[None]]] = None):
        """
        Initialize transport.

        Args:
            credentials_provider: Owner of the shared token
            session: aiohttp session (defaults to the process-wide session)
            cookies: Cookies sent to https targets when the token is empty
            request_timeout: Total timeout of one attempt in seconds
            max_transient_retries: Retries after 504/timeouts (None = unbounded)
            retry_base_delay: First transient backoff delay in seconds
            retry_max_delay: Cap on a single backoff delay
            max_auth_refreshes: Refreshes allowed over the whole call (not reset by
                transient retries or by a later 401 after a success)
            sleep: Backoff sleep override, ``sleep(seconds, token)``
        """
        self.credentials_provider = credentials_provider
        self.session = session
        self.cookies = dict(cookies or {})
        self.request_timeout = request_timeout
        self.max_transient_retries = max_transient_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.max_auth_refreshes = max_auth_refreshes
        self._sleep = sleep or (lambda seconds, token: token.sleep(seconds))

    @classmethod
    def from_config(cls, config, credentials_provider: CredentialsProvider,
                    session: Optional[aiohttp.ClientSession] = None) -> "CredentialedTransport":
        return cls(
            credentials_provider,
            session=session,
            cookies=config.cookies,
            request_timeout=config.request_timeout,
            max_transient_retries=config.max_transient_retries,
            retry_base_delay=config.retry_base_delay,
            retry_max_delay=config.retry_max_delay,
            max_auth_refreshes=config.max_auth_refreshes,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is not None:
            return self.session
        return await get_aiohttp_session()

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff before transient retry number ``attempt`` (1-based)."""
        return min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)

    async def execute(self, call: HttpCall,
                      cancellation: Optional[CancellationToken] = None) -> Any:
        """
        Execute ``call`` until it succeeds, fails fatally or is cancelled.

        Args:
            call: The request to make
            cancellation: Token observed at every suspension point

        Returns:
            Response body decoded per ``call.response_type``

        Raises:
            TransportFatal: Non-retryable status, connection failure or retries exhausted
            Cancelled: The token fired while waiting
        """
        token = ensure_token(cancellation)
        credential = await self._credential(token, refresh=False)

        transient_attempts = 0
        auth_refreshes = 0
        while True:
            token.raise_if_cancelled()
            try:
                return await token.run(self._attempt(call, credential))

            except TransportUnauthorized as e:
                auth_refreshes += 1
                if auth_refreshes > self.max_auth_refreshes:
                    metrics.requests_total.labels(call.method, "fatal").inc()
                    raise TransportFatal(
                        f"{call.method} {call.url} still unauthorized after "
                        f"{self.max_auth_refreshes} credential refreshes",
                        status=e.status, url=call.url
                    ) from e
                logger.info(f"{e.status} from {call.url}, refreshing credentials")
                metrics.retries_total.labels("unauthorized").inc()
                credential = await self._credential(token, refresh=True, invalid=credential)

            except TransportTransient as e:
                transient_attempts += 1
                if (self.max_transient_retries is not None
                        and transient_attempts > self.max_transient_retries):
                    metrics.requests_total.labels(call.method, "fatal").inc()
                    raise TransportFatal(
                        f"{call.method} {call.url} failed after "
                        f"{self.max_transient_retries} transient retries",
                        status=e.status, url=call.url
                    ) from e
                delay = self.backoff_delay(transient_attempts)
                logger.warning(
                    f"Transient failure ({e}) for {call.url}, retry "
                    f"#{transient_attempts} in {delay:.2f}s"
                )
                metrics.retries_total.labels("transient").inc()
                await self._sleep(delay, token)

    async def _credential(self, token: CancellationToken, refresh: bool,
                          invalid: Optional[str] = None) -> str:
        try:
            if refresh:
                metrics.credential_refreshes_total.inc()
                return await token.run(self.credentials_provider.refresh(invalid))
            return await token.run(self.credentials_provider.get())
        except CredentialsRefreshError as e:
            raise TransportFatal(f"Could not obtain credentials: {e}", status=401) from e

    async def _attempt(self, call: HttpCall, credential: str) -> Any:
        """Make one HTTP attempt; raise the classified error on failure."""
        session = await self._get_session()
        options = apply_credentials(call.url, credential, self.cookies)
        if call.payload is not None:
            options["data"] = call.payload
            options["headers"].setdefault("Content-Type", "application/json")

        with PerformanceTimer(f"{call.method} {call.url}", logger):
            try:
                status, body = await self._send(session, call, options)
            except asyncio.TimeoutError as e:
                metrics.requests_total.labels(call.method, "transient").inc()
                raise TransportTransient(
                    f"Timed out after {self.request_timeout}s", status=0, url=call.url
                ) from e
            except aiohttp.ClientError as e:
                metrics.requests_total.labels(call.method, "fatal").inc()
                raise TransportFatal(
                    f"{call.method} {call.url} failed: {e}", status=0, url=call.url
                ) from e

        if 200 <= status < 300:
            metrics.requests_total.labels(call.method, "ok").inc()
            return body

        error_class = classify_status(status)
        outcome = {
            TransportUnauthorized: "unauthorized",
            TransportTransient: "transient",
        }.get(error_class, "fatal")
        metrics.requests_total.labels(call.method, outcome).inc()
        if error_class is TransportFatal:
            logger.error(f"{call.method} {call.url} returned {status}")
        raise error_class(f"{call.method} {call.url} returned {status}", status=status, url=call.url)

    async def _send(self, session: aiohttp.ClientSession, call: HttpCall,
                    options: Dict[str, Any]) -> Tuple[int, Any]:
        async with session.request(
            call.method,
            call.url,
            timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            **options
        ) as response:
            status = response.status
            if not 200 <= status < 300:
                return status, None
            if call.response_type is ResponseType.BINARY:
                return status, await response.read()
            if call.response_type is ResponseType.JSON:
                try:
                    return status, await response.json(content_type=None)
                except ValueError as e:
                    raise DecodeMalformed(f"Invalid JSON from {call.url}: {e}") from e
            # Invalid UTF-8 bytes decode to U+FFFD
            return status, await response.text(errors="replace")
