"""
Shared aiohttp session.

One session per process; every transport and credentials provider that is not
handed an explicit session borrows this one.
"""

import asyncio
from typing import Optional

import aiohttp


# Global aiohttp session and lock
_aiohttp_session: Optional[aiohttp.ClientSession] = None
_session_lock = asyncio.Lock()


async def get_aiohttp_session() -> aiohttp.ClientSession:
    """Get or create global aiohttp session with thread safety."""
    global _aiohttp_session
    async with _session_lock:
        if _aiohttp_session is None or _aiohttp_session.closed:
            # Cookies are attached per request so bearer and cookie modes
            # never mix; the session itself must not remember any.
            _aiohttp_session = aiohttp.ClientSession(
                cookie_jar=aiohttp.DummyCookieJar()
            )
        return _aiohttp_session


async def close_aiohttp_session() -> None:
    """Close the global session if one was opened."""
    global _aiohttp_session
    async with _session_lock:
        if _aiohttp_session is not None and not _aiohttp_session.closed:
            await _aiohttp_session.close()
        _aiohttp_session = None
