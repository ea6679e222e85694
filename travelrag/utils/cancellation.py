"""Structured cancellation for long-running jobs and pipeline runs"""
import asyncio
from typing import Awaitable, Optional, TypeVar

from .errors import OperationCancelledError

T = TypeVar("T")


class CancellationToken:
    """
    Cancellation signal threaded through a pipeline run or batch job.

    Callers check `raise_if_cancelled()` at stage boundaries and wrap
    awaited provider calls in `run()` so a cancel interrupts them.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable`, aborting it if the token fires first.

        Raises:
            OperationCancelledError: If the token fired before completion
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelledError(self.reason or "cancelled")
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            waiter.cancel()
            raise

        if work in done:
            waiter.cancel()
            return work.result()

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise OperationCancelledError(self.reason or "cancelled")


async def run_cancellable(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> T:
    """Await directly when no token is supplied"""
    if token is None:
        return await awaitable
    return await token.run(awaitable)
