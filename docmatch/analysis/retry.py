"""Bounded retry with exponential backoff for external calls."""

import time
from collections.abc import Callable
from typing import TypeVar

from docmatch.utils.exceptions import TransientExternalFailure
from docmatch.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def retry_with_backoff(
    operation: Callable[[], T],
    description: str,
    max_attempts: int = 3,
    initial_delay: float = 5.0,
    backoff_factor: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation``, retrying transient failures with growing delays.

    Only :class:`TransientExternalFailure` is retried; any other exception
    propagates immediately.

    Args:
        operation: Zero-argument callable to run.
        description: What is being attempted, for log messages.
        max_attempts: Total number of attempts, at least one.
        initial_delay: Seconds to wait after the first failure.
        backoff_factor: Multiplier applied to the delay after each failure.
        sleep: Sleep function, injectable for tests.

    Returns:
        The operation's return value.

    Raises:
        TransientExternalFailure: The last failure once attempts run out.
    """
    attempts = max(1, max_attempts)
    delay = initial_delay

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except TransientExternalFailure as exc:
            if attempt == attempts:
                logger.error(
                    "%s failed after %d attempts: %s", description, attempts, exc
                )
                raise
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                description,
                attempt,
                attempts,
                delay,
                exc,
            )
            sleep(delay)
            delay *= backoff_factor

    raise AssertionError("unreachable")
