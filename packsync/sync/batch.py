"""BatchProcessor - bounded-concurrency processing of a work list.

Items are processed ``batch_size`` at a time with ``asyncio.gather``; the
processor sleeps ``delay_seconds`` between batches so a large config bundle
does not hammer the remote store. Results keep input order.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar


T = TypeVar("T")
R = TypeVar("R")


class BatchProcessor:
    """Process items in sequential batches of concurrent tasks."""

    def __init__(
        self,
        batch_size: int = 100,
        delay_seconds: float = 0.01,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")
        self._batch_size = batch_size
        self._delay = delay_seconds
        self._sleep = sleep

    @property
    def batch_size(self) -> int:
        return self._batch_size

    async def process(
        self,
        items: Sequence[T],
        processor: Callable[[T], Awaitable[R]],
        on_progress: Callable[[int, int], None] | None = None,
    ) -> list[R]:
        """Run ``processor`` over every item.

        Args:
            items: Work list
            processor: Coroutine function applied to each item
            on_progress: Called with (processed, total) after each batch

        Returns:
            Results in input order

        Raises:
            Exception: The first failure of a batch; later batches are not
                started
        """
        total = len(items)
        results: list[R] = []

        for start in range(0, total, self._batch_size):
            batch = items[start:start + self._batch_size]
            results.extend(await asyncio.gather(*(processor(item) for item in batch)))

            if on_progress is not None:
                on_progress(len(results), total)

            if start + self._batch_size < total and self._delay > 0:
                await self._sleep(self._delay)

        return results
