"""Retry handler with linearly increasing backoff for transient failures."""

import asyncio
from typing import Any, Awaitable, Callable, Optional


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = 0.5,
    max_delay: float = 4.0
) -> float:
    """
    Calculate linear backoff delay.

    Formula: min(max_delay, base_delay * (attempt + 1))

    Args:
        attempt: Retry attempt number (0-indexed)
        base_delay: Delay added per attempt in seconds
        max_delay: Maximum delay cap in seconds

    Returns:
        Delay in seconds
    """
    return min(max_delay, base_delay * (attempt + 1))


class RetryHandler:
    """
    Retries transient failures with a fixed budget and linear backoff.

    Only exceptions flagged ``transient`` (connection-class errors) are
    retried. Validation, generation, circuit-open, pool-timeout and
    external-call failures are raised on the first occurrence.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 4.0,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize retry handler.

        Args:
            max_retries: Maximum number of retry attempts after the first try
            base_delay: Backoff step in seconds
            max_delay: Maximum delay cap
            sleeper: Async sleep function (injectable for tests)
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleeper

    def is_retryable(self, error: BaseException) -> bool:
        """Check whether ``error`` is a transient failure worth retrying."""
        return bool(getattr(error, "transient", False))

    async def execute(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        on_retry: Optional[Callable[[int, float, BaseException], None]] = None,
        **kwargs
    ) -> Any:
        """
        Execute an async function with retry logic.

        Args:
            func: Coroutine function to execute
            *args: Positional arguments for func
            on_retry: Called with (attempt, delay, error) before each backoff sleep
            **kwargs: Keyword arguments for func

        Returns:
            Result from successful function execution

        Raises:
            Exception: The last error once retries are exhausted, or the first
                non-transient error
        """
        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_retries or not self.is_retryable(e):
                    raise

                delay = calculate_backoff_delay(attempt, self.base_delay, self.max_delay)
                if on_retry is not None:
                    on_retry(attempt + 1, delay, e)
                await self._sleep(delay)
                attempt += 1
