"""
Cooperative cancellation tokens.

A single token is threaded through every transport attempt and every recursive
resolve call. Work races against the token at each suspension point, so
cancelling aborts whatever is currently being awaited.
"""

import asyncio
from typing import Any, Awaitable, Optional

from .exceptions import Cancelled


class CancellationToken:
    """Observable cancelled flag backed by an ``asyncio.Event``."""

    def __init__(self):
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _get_event(self) -> asyncio.Event:
        # Created lazily so the token can be built outside a running loop
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    def cancel(self, reason: str = "cancelled") -> None:
        """Mark the token cancelled and wake every pending waiter."""
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled(self.reason)

    async def run(self, awaitable: Awaitable[Any]) -> Any:
        """
        Await ``awaitable`` unless the token fires first.

        Args:
            awaitable: Coroutine or future to race against the token

        Returns:
            The awaitable's result

        Raises:
            Cancelled: If the token was cancelled before the awaitable finished
        """
        if self._cancelled:
            # Close an un-started coroutine so it doesn't warn on collection
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise Cancelled(self.reason)

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._get_event().wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()
        raise Cancelled(self.reason)

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds``, waking early with ``Cancelled``."""
        await self.run(asyncio.sleep(seconds))


class _NeverCancelled(CancellationToken):
    """Token that cannot be cancelled; awaits run without racing."""

    def cancel(self, reason: str = "cancelled") -> None:
        raise RuntimeError("The uncancelable token cannot be cancelled")

    async def run(self, awaitable: Awaitable[Any]) -> Any:
        return await awaitable


uncancelable_token = _NeverCancelled()


def ensure_token(token: Optional[CancellationToken]) -> CancellationToken:
    """Return ``token`` or the shared uncancelable token."""
    return token if token is not None else uncancelable_token
