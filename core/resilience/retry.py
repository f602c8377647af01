"""
Bazaar Core Resilience — Bounded Retry
=========================================
Retries a call only while the raised error is classified as
transient. Attempts and delays are bounded, so no caller can be
blocked indefinitely by a flapping collaborator.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

logger = logging.getLogger("bazaar.resilience")

T = TypeVar("T")


def _retryable_flag(exc: BaseException) -> bool:
    return bool(getattr(exc, "retryable", False))


@dataclass(frozen=True)
class RetryPolicy:
    """
    Fields:
        max_attempts:    Total attempts, including the first one
        backoff_initial: Delay before the second attempt (seconds)
        backoff_factor:  Multiplier applied per further attempt
        backoff_max:     Upper bound for a single delay
        retry_on:        Predicate deciding whether an error is transient
    """

    max_attempts: int = 3
    backoff_initial: float = 1.0
    backoff_factor: float = 2.0
    backoff_max: float = 8.0
    retry_on: Callable[[BaseException], bool] = _retryable_flag

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        if self.backoff_initial < 0 or self.backoff_max < 0:
            raise ValueError("Backoff delays must be non-negative.")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        delay = self.backoff_initial * (self.backoff_factor ** (attempt - 1))
        return min(delay, self.backoff_max)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """
    Invoke fn until it succeeds, a non-retryable error is raised,
    or max_attempts is exhausted. The last error propagates.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except Exception as exc:
            if not policy.retry_on(exc):
                raise
            if attempt >= policy.max_attempts:
                logger.error(
                    "%s: giving up after %d attempt(s): %s", label, attempt, exc
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s: attempt %d/%d failed (%s), retrying in %.2fs",
                label, attempt, policy.max_attempts, exc, delay,
            )
            if on_retry is not None:
                on_retry(attempt, exc)
            sleep(delay)
