"""RetryPolicy - exponential-backoff retry for async operations.

Classification:
- SyncNetworkError: retryable
- Any other PackSyncError: fatal, raised immediately
- httpx.TransportError, ConnectionError, TimeoutError: retryable
- Anything else: retryable iff its message mentions a network failure

The delay before attempt n (n > 1) is ``base_delay * 2 ** (n - 1)``.
The final error is re-raised as the same object, never wrapped.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from packsync.core.exceptions import PackSyncError
from packsync.core.logging import get_logger


logger = get_logger(__name__)

T = TypeVar("T")

# Message fragments of foreign exceptions treated as transient
RETRYABLE_KEYWORDS: tuple[str, ...] = ("network", "fetch", "timeout", "timed out", "connection")


@dataclass(frozen=True)
class RetryState:
    """Snapshot passed to ``on_retry`` before each backoff.

    Attributes:
        attempt: Attempt that just failed (1-based)
        max_attempts: Attempt budget
        remaining: Attempts left after this one
        delay_seconds: Backoff before the next attempt
        error: The failure being retried
    """

    attempt: int
    max_attempts: int
    remaining: int
    delay_seconds: float
    error: BaseException


def is_retryable(exc: BaseException) -> bool:
    """Decide whether a failure is transient."""
    if isinstance(exc, PackSyncError):
        return exc.retryable
    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return True
    message = str(exc).lower()
    return any(keyword in message for keyword in RETRYABLE_KEYWORDS)


class RetryPolicy:
    """Runs an async operation with bounded exponential backoff.

    Example:
        >>> policy = RetryPolicy(max_attempts=3, base_delay_seconds=1.0)
        >>> manifest = await policy.run(lambda: remote.fetch_manifest(repo, uuid))
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the policy.

        Args:
            max_attempts: Maximum number of invocations (>= 1)
            base_delay_seconds: Backoff base delay
            sleep: Awaitable sleep, injectable for tests
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if base_delay_seconds < 0:
            raise ValueError("base_delay_seconds cannot be negative")
        self._max_attempts = max_attempts
        self._base_delay = base_delay_seconds
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def base_delay_seconds(self) -> float:
        return self._base_delay

    @staticmethod
    def backoff(attempt: int, base_delay_seconds: float) -> float:
        """Delay before ``attempt`` (1-based); zero for the first attempt."""
        if attempt <= 1:
            return 0.0
        return base_delay_seconds * (2 ** (attempt - 1))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        max_attempts: int | None = None,
        base_delay_seconds: float | None = None,
        on_retry: Callable[[RetryState], None] | None = None,
    ) -> T:
        """Invoke ``operation`` until it succeeds or the budget is spent.

        Args:
            operation: Zero-argument coroutine function
            max_attempts: Per-call override of the attempt budget
            base_delay_seconds: Per-call override of the base delay
            on_retry: Called with a RetryState before each backoff

        Returns:
            The operation's result

        Raises:
            Exception: The fatal error, or the last retryable error once
                the budget is exhausted
        """
        attempts_allowed = self._max_attempts if max_attempts is None else max_attempts
        base_delay = self._base_delay if base_delay_seconds is None else base_delay_seconds
        if attempts_allowed < 1:
            raise ValueError("max_attempts must be at least 1")

        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                retryable = is_retryable(e)
                if not retryable or attempt >= attempts_allowed:
                    if isinstance(e, PackSyncError):
                        e.attempts = attempt
                    logger.warning(
                        "Operation failed",
                        attempt=attempt,
                        max_attempts=attempts_allowed,
                        retryable=retryable,
                        error=str(e),
                    )
                    raise

                delay = self.backoff(attempt + 1, base_delay)
                logger.info(
                    "Retrying operation",
                    attempt=attempt,
                    max_attempts=attempts_allowed,
                    delay_seconds=delay,
                    error=str(e),
                )
                if on_retry is not None:
                    on_retry(
                        RetryState(
                            attempt=attempt,
                            max_attempts=attempts_allowed,
                            remaining=attempts_allowed - attempt,
                            delay_seconds=delay,
                            error=e,
                        )
                    )
                await self._sleep(delay)
