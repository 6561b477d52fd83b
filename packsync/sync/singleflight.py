"""SingleFlight - at most one in-flight call per key.

Concurrent sessions fetching the same bundle share one task instead of
issuing duplicate requests. The key is released as soon as the task
finishes, successfully or not, so a later caller starts a fresh call.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar


T = TypeVar("T")


class SingleFlight:
    """Deduplicates concurrent calls by key."""

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    def in_flight(self, key: str) -> bool:
        """Check if a call for key is running."""
        return key in self._inflight

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Await the shared call for key, starting it if needed.

        Args:
            key: Deduplication key
            factory: Zero-argument coroutine function started on first use

        Returns:
            The shared result

        Raises:
            Exception: The shared call's failure, raised to every waiter
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._release(key, done))
        # A cancelled waiter must not cancel the call other waiters share
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved when every waiter went away
            task.exception()
