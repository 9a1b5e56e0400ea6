"""
Cooperative cancellation and deadlines for blocking operations.

Every operation that can wait (network I/O, backoff sleeps, job polling)
accepts a CancellationToken. Cancelling the token, or letting its deadline
pass, makes the operation raise CancellationError promptly.

Usage:
    token = CancellationToken(timeout=60)
    job = await controller.await_completion(job_id, token=token)

    # elsewhere
    token.cancel()
"""

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

from forcelink.errors.exceptions import CancellationError

T = TypeVar("T")


def _discard_result(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


class CancellationToken:
    """
    Cancellation signal with an optional deadline.

    Args:
        timeout: Seconds from now after which the token counts as expired
    """

    def __init__(self, timeout: float | None = None):
        self._event = asyncio.Event()
        self._deadline = (
            time.monotonic() + float(timeout) if timeout is not None else None
        )

    @property
    def deadline(self) -> float | None:
        """Monotonic deadline, or None if unbounded."""
        return self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def cancel(self) -> None:
        self._event.set()

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None if unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancellationError("Operation cancelled", reason="cancelled")
        if self.expired:
            raise CancellationError("Deadline exceeded", reason="deadline")

    async def sleep(self, delay: float) -> None:
        """
        Wait for delay seconds unless cancelled or past the deadline first.

        Raises:
            CancellationError: If the token fires before the delay elapses
        """
        self.raise_if_cancelled()
        delay = max(0.0, delay)
        remaining = self.remaining()
        bounded_by_deadline = remaining is not None and remaining <= delay
        wait = remaining if bounded_by_deadline else delay

        try:
            await asyncio.wait_for(self._event.wait(), timeout=wait)
        except TimeoutError:
            if bounded_by_deadline:
                raise CancellationError(
                    "Deadline exceeded", reason="deadline"
                ) from None
            return
        raise CancellationError("Operation cancelled", reason="cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await awaitable, abandoning it if the token fires first.

        The inner task is cancelled when the token wins the race.

        Raises:
            CancellationError: If cancelled or the deadline passes first
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_discard_result)
        if self.cancelled:
            raise CancellationError("Operation cancelled", reason="cancelled")
        raise CancellationError("Deadline exceeded", reason="deadline")


class _NeverCancelled(CancellationToken):
    """Shared token that never fires. Safe to use from any event loop."""

    def __init__(self):
        self._deadline = None

    @property
    def cancelled(self) -> bool:
        return False

    def cancel(self) -> None:
        raise RuntimeError("NEVER token cannot be cancelled")

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(max(0.0, delay))

    async def run(self, awaitable: Awaitable[T]) -> T:
        return await awaitable


NEVER = _NeverCancelled()


__all__ = [
    "CancellationToken",
    "NEVER",
]
