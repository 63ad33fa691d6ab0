"""
Retry policy and executor for LLM API calls.

This module provides retry logic with capped exponential backoff for
transient provider failures. Cancellation is never retried.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterator, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from llmstream.cancellation import CancellationToken
from llmstream.constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_INITIAL_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
)
from llmstream.exceptions import (
    ClassifiedError,
    OperationCancelledError,
    ProviderError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[ClassifiedError], bool]
SleepFunc = Callable[[float], Awaitable[None]]
RetryCallback = Callable[[ClassifiedError, int, float], None]


def default_is_retryable(error: ClassifiedError) -> bool:
    """
    Decide whether an error is worth retrying.

    Rate limits and 5xx provider errors are retryable; everything else is
    not.

    Parameters
    ----------
    error : ClassifiedError
        The error raised by the attempt.

    Returns
    -------
    bool
        True if the attempt should be retried.
    """
    if isinstance(error, RateLimitError):
        return True
    return isinstance(error, ProviderError) and error.is_server_error


class RetryPolicy(BaseModel):
    """
    Immutable retry configuration.

    Parameters
    ----------
    max_attempts : int, default=3
        Total number of attempts, including the first one.
    initial_delay : float, default=1.0
        Wait in seconds before the second attempt.
    max_delay : float, default=10.0
        Ceiling for any single wait, in seconds.
    backoff_multiplier : float, default=1.5
        Factor applied to the wait after every retry.
    is_retryable : Callable[[ClassifiedError], bool], optional
        Predicate deciding whether an error is retried.
    respect_retry_after : bool, default=False
        Wait at least the server's ``Retry-After`` hint (still capped at
        ``max_delay``).

    Examples
    --------
    >>> policy = RetryPolicy(max_attempts=3, initial_delay=1.0, backoff_multiplier=1.5)
    >>> list(policy.delays())
    [1.0, 1.5]
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1, description="Total attempts")
    initial_delay: float = Field(
        default=DEFAULT_RETRY_INITIAL_DELAY,
        ge=0.0,
        description="First backoff delay in seconds",
    )
    max_delay: float = Field(
        default=DEFAULT_RETRY_MAX_DELAY,
        ge=0.0,
        description="Maximum backoff delay in seconds",
    )
    backoff_multiplier: float = Field(
        default=DEFAULT_BACKOFF_MULTIPLIER,
        ge=1.0,
        description="Backoff growth factor",
    )
    is_retryable: RetryPredicate = Field(
        default=default_is_retryable,
        exclude=True,
        description="Retry predicate",
    )
    respect_retry_after: bool = Field(
        default=False,
        description="Honour server Retry-After hints",
    )

    def delays(self) -> Iterator[float]:
        """
        Yield the wait before each retry, in order.

        Yields
        ------
        float
            ``max_attempts - 1`` delays in seconds.
        """
        delay: float = min(self.initial_delay, self.max_delay)
        for _ in range(self.max_attempts - 1):
            yield delay
            delay = min(delay * self.backoff_multiplier, self.max_delay)


class RetryExecutor:
    """
    Run an operation under a ``RetryPolicy``.

    Parameters
    ----------
    policy : RetryPolicy | None, optional
        Policy to apply. Defaults to ``RetryPolicy()``.
    sleep : Callable[[float], Awaitable[None]] | None, optional
        Coroutine used for backoff waits. When omitted the executor sleeps
        on the cancellation token (waking early on cancel) or on
        ``asyncio.sleep`` when no token is given.

    Examples
    --------
    >>> executor = RetryExecutor(RetryPolicy(max_attempts=5))
    >>> text = await executor.execute(lambda: provider.chat(messages, options))
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: SleepFunc | None = None,
    ) -> None:
        self.policy: RetryPolicy = policy or RetryPolicy()
        self._sleep: SleepFunc | None = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        token: CancellationToken | None = None,
        on_retry: RetryCallback | None = None,
    ) -> T:
        """
        Execute ``operation`` with retry logic.

        Parameters
        ----------
        operation : Callable[[], Awaitable[T]]
            Zero-argument coroutine function; called once per attempt.
        token : CancellationToken | None, optional
            Checked before every attempt and during backoff waits.
        on_retry : Callable[[ClassifiedError, int, float], None] | None, optional
            Called before each wait with the error, the failed attempt number
            (1-based) and the wait in seconds.

        Returns
        -------
        T
            Result of the first successful attempt.

        Raises
        ------
        ClassifiedError
            The last error, unchanged, when it is not retryable or attempts
            are exhausted.
        OperationCancelledError
            Immediately when cancellation is observed.
        """
        policy: RetryPolicy = self.policy
        delay: float = min(policy.initial_delay, policy.max_delay)

        for attempt in range(1, policy.max_attempts + 1):
            if token is not None:
                token.check_cancelled()

            try:
                return await operation()
            except OperationCancelledError:
                logger.debug(f"Operation cancelled on attempt {attempt}, not retrying")
                raise
            except ClassifiedError as e:
                if not policy.is_retryable(e):
                    logger.error(f"Non-retryable error: {e}")
                    raise
                if attempt >= policy.max_attempts:
                    logger.error(f"Giving up after {attempt} attempts: {e}")
                    raise

                wait_time: float = self._wait_time(delay, e)
                logger.warning(
                    f"Retryable error (attempt {attempt}/{policy.max_attempts}), "
                    f"retrying in {wait_time:.2f}s: {e}",
                )
                if on_retry:
                    on_retry(e, attempt, wait_time)
                await self._wait(wait_time, token)
                delay = min(delay * policy.backoff_multiplier, policy.max_delay)

        # Should never reach here, but type checker needs it
        raise RuntimeError("Retry executor exhausted without result")

    def _wait_time(self, delay: float, error: ClassifiedError) -> float:
        if (
            self.policy.respect_retry_after
            and isinstance(error, RateLimitError)
            and error.retry_after_ms is not None
        ):
            return min(max(delay, error.retry_after_ms / 1000), self.policy.max_delay)
        return delay

    async def _wait(self, seconds: float, token: CancellationToken | None) -> None:
        if self._sleep is not None:
            await self._sleep(seconds)
            if token is not None:
                token.check_cancelled()
        elif token is not None:
            await token.sleep(seconds)
        else:
            await asyncio.sleep(seconds)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    token: CancellationToken | None = None,
) -> T:
    """
    Shorthand for ``RetryExecutor(policy).execute(operation, token=token)``.

    Examples
    --------
    >>> text = await with_retry(lambda: provider.complete("Hi", options))
    """
    return await RetryExecutor(policy).execute(operation, token=token)
