"""Cooperative cancellation for pipeline runs."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from ..errors import RunCancelled

T = TypeVar("T")


class CancelToken:
    """Threaded through every suspend point of a run.

    Poll sleeps wake as soon as the token is cancelled, and outbound calls
    wrapped with :meth:`guard` are abandoned instead of awaited to completion.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Run cancelled.") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled(self._reason or "Run cancelled.")

    async def sleep(self, seconds: float) -> None:
        self.raise_if_cancelled()
        if seconds <= 0:
            # Still yield so sibling runs get scheduled between attempts.
            await asyncio.sleep(0)
        else:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass
        self.raise_if_cancelled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await an outbound call unless the token fires first."""

        self.raise_if_cancelled()
        call = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            call.cancel()
            raise
        finally:
            waiter.cancel()
        if not call.done():
            call.cancel()
            self.raise_if_cancelled()
        return call.result()
