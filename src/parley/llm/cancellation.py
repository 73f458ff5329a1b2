"""Cancellation token shared between a send operation and its stream."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from ..exceptions import RequestCancelledError

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation flag that can also be awaited."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        When the token wins, the pending work is cancelled and awaited
        before returning, so nothing is left running in the background.

        Raises:
            RequestCancelledError: If the token was cancelled first
        """
        work = asyncio.ensure_future(awaitable)
        if self.cancelled:
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
            raise RequestCancelledError()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)

        if work.cancelled():
            raise RequestCancelledError()
        return work.result()
