import asyncio
import json
import struct
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import numpy as np
import pytest

from dvid_mesh.external.credentials import RefreshingCredentialsProvider
from dvid_mesh.external.transport import CredentialedTransport


BASE = "https://dvid.example.org/api/node/abc123/segmentation_meshes/key"


def leaf_bytes(positions, indices) -> bytes:
    """Build a .ngmesh leaf: uint32 N, float32[N*3], uint32 indices."""
    positions = np.asarray(positions, dtype="<f4").reshape(-1, 3)
    indices = np.asarray(indices, dtype="<u4").reshape(-1)
    return struct.pack("<I", positions.shape[0]) + positions.tobytes() + indices.tobytes()


class FakeResponse:
    def __init__(self, status: int, body: Any = b""):
        self.status = status
        if isinstance(body, (bytes, bytearray)):
            self._body = bytes(body)
        elif isinstance(body, str):
            self._body = body.encode()
        else:
            self._body = json.dumps(body).encode()

    async def read(self) -> bytes:
        return self._body

    async def text(self, encoding: Optional[str] = None, errors: str = "strict") -> str:
        return self._body.decode(encoding or "utf-8", errors)

    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        return json.loads(self._body.decode())

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientError(f"HTTP {self.status}")


class _RequestContext:
    def __init__(self, outcome, delay: float = 0.0):
        self._outcome = outcome
        self._delay = delay

    async def __aenter__(self) -> FakeResponse:
        if self._delay:
            await asyncio.sleep(self._delay)
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        if isinstance(self._outcome, type) and issubclass(self._outcome, BaseException):
            raise self._outcome()
        status, body = self._outcome
        return FakeResponse(status, body)

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None


class FakeSession:
    """
    In-memory stand-in for ``aiohttp.ClientSession``.

    Routes map a URL to either one outcome, reused for every request, or a
    list of outcomes consumed in order (the last one repeats). An outcome is a
    ``(status, body)`` pair or an exception raised when the request is entered.
    Unknown URLs answer 404. ``delays`` holds per-URL seconds a request
    waits before its response arrives.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.delays: Dict[str, float] = {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.closed = False

    def _next_outcome(self, url: str):
        outcome = self.routes.get(url, (404, b"not found"))
        if isinstance(outcome, list):
            if len(outcome) > 1:
                return outcome.pop(0)
            return outcome[0]
        return outcome

    def request(self, method: str, url: str, **options) -> _RequestContext:
        self.calls.append((method, url, options))
        return _RequestContext(self._next_outcome(url), self.delays.get(url, 0.0))

    def get(self, url: str, **options) -> _RequestContext:
        return self.request("GET", url, **options)

    def urls(self) -> List[str]:
        return [url for _, url, _ in self.calls]

    async def close(self) -> None:
        self.closed = True


class CountingCredentialsProvider(RefreshingCredentialsProvider):
    """Issues ``token-1``, ``token-2``, ... and counts fetches."""

    def __init__(self, initial_token: Optional[str] = "token-0", **kwargs):
        kwargs.setdefault("min_refresh_interval", 0.0)
        super().__init__(initial_token=initial_token, **kwargs)
        self.fetches = 0

    async def fetch_token(self) -> str:
        self.fetches += 1
        return f"token-{self.fetches}"


async def no_sleep(seconds, token) -> None:
    token.raise_if_cancelled()


def make_transport(session: FakeSession, provider=None, **kwargs) -> CredentialedTransport:
    kwargs.setdefault("sleep", no_sleep)
    return CredentialedTransport(
        provider or CountingCredentialsProvider(), session=session, **kwargs
    )


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def provider() -> CountingCredentialsProvider:
    return CountingCredentialsProvider()
