"""Retry and backoff helpers on top of tenacity."""

import time
from collections.abc import Callable
from types import SimpleNamespace
from typing import TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from factory.errors import NetworkError
from factory.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _exponential(min_delay: float, max_delay: float) -> wait_exponential:
    return wait_exponential(multiplier=1, min=min_delay, max=max_delay)


def backoff_delay(attempt: int, min_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (1-based).

    2 ** (attempt - 1) seconds, clamped to [min_delay, max_delay], so with
    min_delay=2 the sequence is 2, 2, 4, 8, ...
    """
    # wait strategies only read attempt_number from the call state
    return _exponential(min_delay, max_delay)(SimpleNamespace(attempt_number=attempt))


def retry_with_backoff(
    func: Callable[[], T],
    max_attempts: int = 3,
    initial_delay: float = 2.0,
    max_delay: float = 30.0,
    description: str = "operation",
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Call func, retrying NetworkError with exponential backoff.

    Other exceptions are not retried. Once max_attempts calls have failed a
    NetworkError naming the attempt count is raised, chained to the last one.
    `sleep` defaults to time.sleep.
    """

    def log_retry(state: RetryCallState) -> None:
        logger.warning(
            f"{description} failed (attempt {state.attempt_number}/{max_attempts}): "
            f"{state.outcome.exception()}. Retrying in {state.next_action.sleep:.0f}s..."
        )

    retrying = Retrying(
        retry=retry_if_exception_type(NetworkError),
        stop=stop_after_attempt(max_attempts),
        wait=_exponential(initial_delay, max_delay),
        sleep=sleep or time.sleep,
        before_sleep=log_retry,
    )
    try:
        return retrying(func)
    except RetryError as e:
        last = e.last_attempt
        raise NetworkError(
            f"{description} failed after {last.attempt_number} attempts: {last.exception()}"
        ) from last.exception()
