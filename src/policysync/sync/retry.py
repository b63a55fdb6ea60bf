"""Retry logic for token-guarded mutations and eventual consistency.

This module provides:
- retry_with_token: Run a mutation with a fresh change token per attempt,
  retrying transient conflicts with exponential backoff until a deadline
- retry_until: Retry while a parent resource is still initializing,
  bounded by an absolute timeout
- compute_backoff: Exponential backoff with jitter

Both loops check the deadline between attempts only; a call already in
flight is never interrupted.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from policysync.client.api import ParentInitializingError, TransientAPIError
from policysync.core.config import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_CONSISTENCY_TIMEOUT,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_JITTER,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MUTATION_TIMEOUT,
)
from policysync.sync.errors import DeadlineExceededError

if TYPE_CHECKING:
    from policysync.sync.tokens import ChangeTokenProvider

logger = logging.getLogger(__name__)

# Stale token, resource in use, rate limited
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (TransientAPIError,)

# Parent resource still provisioning
INITIALIZING_ERRORS: tuple[type[Exception], ...] = (ParentInitializingError,)


@dataclass
class RetryState:
    """Bookkeeping for one coordinated call."""

    deadline: float
    attempts: int = 0
    last_error: Exception | None = None

    def remaining(self) -> float:
        """Seconds left before the deadline (negative once it passed)."""
        return self.deadline - time.monotonic()


def compute_backoff(
    attempt: int,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    jitter: float = DEFAULT_JITTER,
) -> float:
    """Delay to wait after the given failed attempt (1-based).

    The exponential delay is capped at max_backoff, then the ``jitter``
    fraction of it is replaced by a uniformly random share so concurrent
    writers spread out.
    """
    delay = min(initial_backoff * backoff_multiplier ** max(attempt - 1, 0), max_backoff)
    if jitter > 0:
        delay = delay * (1.0 - jitter) + random.uniform(0.0, delay * jitter)
    return delay


def _retry(
    func: Callable[[], Any],
    timeout: float,
    retryable_exceptions: tuple[type[Exception], ...],
    initial_backoff: float,
    max_backoff: float,
    backoff_multiplier: float,
    jitter: float,
    description: str,
) -> Any:
    state = RetryState(deadline=time.monotonic() + timeout)

    while True:
        state.attempts += 1
        try:
            return func()
        except retryable_exceptions as e:
            state.last_error = e
            remaining = state.remaining()
            if remaining <= 0:
                logger.error(
                    f"{description} still failing after {state.attempts} attempts "
                    f"and {timeout:.0f}s: {e}"
                )
                raise DeadlineExceededError(e, state.attempts, timeout) from e

            delay = min(
                compute_backoff(
                    state.attempts,
                    initial_backoff=initial_backoff,
                    max_backoff=max_backoff,
                    backoff_multiplier=backoff_multiplier,
                    jitter=jitter,
                ),
                remaining,
            )
            logger.warning(
                f"{description} attempt {state.attempts} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            time.sleep(delay)


def retry_with_token(
    tokens: ChangeTokenProvider,
    operation: Callable[[str], Any],
    timeout: float = DEFAULT_MUTATION_TIMEOUT,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    jitter: float = DEFAULT_JITTER,
    retryable_exceptions: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
    description: str = "Mutation",
) -> Any:
    """Execute a mutation with a freshly acquired change token per attempt.

    Args:
        tokens: Provider fetching the current change token.
        operation: Function taking the token and performing one mutating call.
        timeout: Seconds before giving up on transient errors.
        initial_backoff: Delay after the first failed attempt.
        max_backoff: Maximum delay between attempts.
        backoff_multiplier: Growth factor of the delay.
        jitter: Randomized fraction of each delay.
        retryable_exceptions: Errors that trigger a retry. Token acquisition
            failures of these types are retried too.
        description: Label used in retry log messages.

    Returns:
        Result of the operation.

    Raises:
        DeadlineExceededError: If retryable errors persisted past the deadline.
        Exception: Any non-retryable error from the operation, unchanged.
    """
    return _retry(
        lambda: operation(tokens.acquire()),
        timeout=timeout,
        retryable_exceptions=retryable_exceptions,
        initial_backoff=initial_backoff,
        max_backoff=max_backoff,
        backoff_multiplier=backoff_multiplier,
        jitter=jitter,
        description=description,
    )


def retry_until(
    operation: Callable[[], Any],
    timeout: float = DEFAULT_CONSISTENCY_TIMEOUT,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    jitter: float = DEFAULT_JITTER,
    retryable_exceptions: tuple[type[Exception], ...] = INITIALIZING_ERRORS,
    description: str = "Creation",
) -> Any:
    """Execute an operation, retrying while its parent resource initializes.

    Used for creations the API accepts before the enclosing container has
    finished provisioning. Bounded by an absolute timeout because the
    provisioning time is outside our control.

    Raises:
        DeadlineExceededError: If the parent was still initializing at the deadline.
        Exception: Any other error from the operation, unchanged.
    """
    return _retry(
        operation,
        timeout=timeout,
        retryable_exceptions=retryable_exceptions,
        initial_backoff=initial_backoff,
        max_backoff=max_backoff,
        backoff_multiplier=backoff_multiplier,
        jitter=jitter,
        description=description,
    )
