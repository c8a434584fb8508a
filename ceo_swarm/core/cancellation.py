"""
Cancellation and pause primitives shared by the engines and the server runner.

A CancellationToken is threaded through a whole run. Firing it records *why*
(user abort, timeout, failure) so the caller can decide whether the run ends
with an error message or without one, without inspecting exception types.
"""

import asyncio
from typing import Any, Awaitable, Optional, TypeVar

from .errors import OperationCancelled
from .types import CancelReason

T = TypeVar("T")


class CancellationToken:
    """One-shot, idempotent cancellation signal carrying a reason."""

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[CancelReason] = None

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[CancelReason]:
        return self._reason

    def cancel(self, reason: CancelReason = CancelReason.USER_ABORT) -> bool:
        """Fire the token. Returns False if it had already fired; the first reason wins."""
        if self._reason is not None:
            return False
        self._reason = reason
        self._event.set()
        return True

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise OperationCancelled(self._reason)

    async def wait(self) -> CancelReason:
        await self._event.wait()
        return self._reason

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless the token fires first.

        On cancellation the in-flight work is cancelled (closing any open HTTP
        stream) and OperationCancelled is raised in its place.
        """
        if self._reason is not None:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled(self._reason)
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
        raise OperationCancelled(self._reason)


class ResumableGate:
    """Open/closed gate that work units pass through; closing it pauses them."""

    def __init__(self):
        self._open = asyncio.Event()
        self._open.set()

    @property
    def is_open(self) -> bool:
        return self._open.is_set()

    def close(self) -> None:
        self._open.clear()

    def open(self) -> None:
        self._open.set()

    async def wait_open(self, token: Optional[CancellationToken] = None) -> Any:
        if self._open.is_set():
            return
        if token is None:
            await self._open.wait()
        else:
            await token.guard(self._open.wait())
