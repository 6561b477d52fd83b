"""InitOnce - one-shot async initialization latch.

Concurrent callers of ``run()`` share a single in-flight initialization.
A successful run is remembered and never repeated; a failed run releases
the latch so the next caller retries.

Pattern: Single shared initialization promise
"""

import asyncio
from collections.abc import Awaitable, Callable


class InitOnce:
    """Latch guarding an async initializer."""

    def __init__(self) -> None:
        self._task: asyncio.Task[None] | None = None
        self._done = False

    @property
    def done(self) -> bool:
        """True once an initializer completed successfully."""
        return self._done

    async def run(self, initializer: Callable[[], Awaitable[None]]) -> None:
        """Run ``initializer`` unless it already completed.

        Args:
            initializer: Zero-argument coroutine function

        Raises:
            Exception: Whatever the shared initializer raised
        """
        if self._done:
            return
        if self._task is None:
            self._task = asyncio.ensure_future(initializer())
        task = self._task
        try:
            await asyncio.shield(task)
        except Exception:
            # Release the latch so a later call can retry
            if self._task is task:
                self._task = None
            raise
        self._done = True

    def reset(self) -> None:
        """Forget a completed initialization."""
        self._task = None
        self._done = False
