"""Bounded retry with a recovery step between attempts."""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
Recovery = Callable[[], Awaitable[None]]
AttemptFailureHook = Callable[[int, Exception], None]


async def run_with_retry(
    operation: Operation[T],
    max_attempts: int,
    on_attempt_failure: Optional[AttemptFailureHook] = None,
    *,
    recover: Optional[Recovery] = None,
    delay: float = 0.0,
    jitter: float = 0.0,
) -> T:
    """Run ``operation`` up to ``max_attempts + 1`` times.

    Every exception is retryable. Before each retry the ``recover`` step runs;
    a failing recovery counts as a failure of that attempt. Between attempts
    the call sleeps ``delay`` plus up to ``jitter`` seconds.

    Args:
        operation: Zero-argument coroutine function to run
        max_attempts: Number of retries after the first attempt
        on_attempt_failure: Called with (attempt_number, exception) after each failure
        recover: Recovery step run before every retry
        delay: Fixed wait between attempts
        jitter: Upper bound of random extra wait

    Returns:
        The operation's result

    Raises:
        Exception: The last failure once all attempts are exhausted
    """
    if max_attempts < 0:
        raise ValueError("max_attempts must be >= 0")

    last_error: Optional[Exception] = None

    for attempt in range(max_attempts + 1):
        try:
            if attempt > 0 and recover is not None:
                await recover()
            return await operation()
        except Exception as e:
            last_error = e
            if on_attempt_failure is not None:
                on_attempt_failure(attempt + 1, e)
            if attempt < max_attempts:
                wait = delay + (random.uniform(0, jitter) if jitter > 0 else 0.0)
                if wait > 0:
                    await asyncio.sleep(wait)

    raise last_error  # type: ignore[misc]


class RetryPolicy:
    """Retry settings bound to a recovery step."""

    def __init__(
        self,
        max_attempts: int = 2,
        delay: float = 1.0,
        jitter: float = 0.0,
        recover: Optional[Recovery] = None,
    ):
        self.max_attempts = max_attempts
        self.delay = delay
        self.jitter = jitter
        self.recover = recover

    async def run(
        self,
        operation: Operation[T],
        on_attempt_failure: Optional[AttemptFailureHook] = None,
    ) -> T:
        """Run an operation under this policy."""
        return await run_with_retry(
            operation,
            self.max_attempts,
            on_attempt_failure,
            recover=self.recover,
            delay=self.delay,
            jitter=self.jitter,
        )
