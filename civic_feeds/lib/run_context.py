"""Cancellation and deadline context for discovery and collection runs.

One RunContext is created per invocation and handed to every network call
and batch loop. Cancelling it aborts in-flight requests and stops the loop
at the next check.
"""

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

from ..errors import RunCancelled

T = TypeVar("T")


class RunContext:
    """Cooperative cancellation token with an optional overall deadline."""

    def __init__(self, deadline_seconds: Optional[float] = None):
        self._cancelled = asyncio.Event()
        self._reason: Optional[str] = None
        self._deadline = (
            time.monotonic() + deadline_seconds if deadline_seconds is not None else None
        )

    def cancel(self, reason: str = "cancelled by caller"):
        """Abort the run. In-flight calls started through run() are cancelled."""
        if not self._cancelled.is_set():
            self._reason = reason
            self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def clamp(self, timeout: float) -> float:
        """Shrink a per-call timeout so it never outlives the run deadline."""
        self.raise_if_cancelled()
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return min(timeout, remaining)

    def raise_if_cancelled(self):
        if self.cancelled:
            raise RunCancelled(self._reason or "cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, aborting it if the context is cancelled first."""
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._cancelled.wait())
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
        try:
            await task
        except asyncio.CancelledError:
            pass
        if not self._cancelled.is_set():
            self.cancel("deadline exceeded")
        raise RunCancelled(self._reason)

    async def sleep(self, seconds: float):
        """Politeness delay that wakes early (and raises) on cancellation."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        remaining = self.remaining()
        wait_for = seconds if remaining is None else min(seconds, remaining)
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=wait_for)
        except asyncio.TimeoutError:
            pass
        self.raise_if_cancelled()
