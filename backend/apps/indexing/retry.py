"""
Bounded exponential backoff for the embedding backfill.

Request paths call providers exactly once and surface failures
immediately; only populate_embeddings (manage.py embed_chunks) retries.
"""
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type

from apps.core.errors import UpstreamModelError

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Raised when every attempt allowed by the policy has failed."""

    def __init__(self, message: str, attempts: int, last_exception: Exception):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often and how patiently to retry.

    The n-th retry (0-indexed) waits initial_backoff * multiplier**n
    seconds, capped at max_backoff, then shifted by up to +/- jitter
    of itself.
    """
    max_retries: int = 3
    initial_backoff: float = 2.0
    multiplier: float = 2.0
    max_backoff: float = 30.0
    jitter: float = 0.25

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff(self, retry: int, uniform: Callable[[float, float], float] = random.uniform) -> float:
        delay = min(self.initial_backoff * (self.multiplier ** retry), self.max_backoff)
        spread = delay * self.jitter
        if spread:
            delay += uniform(-spread, spread)
        return max(0.0, delay)


# 4 attempts, waits of roughly 2s, 4s, 8s
EMBEDDING_RETRY_POLICY = RetryPolicy()


def is_retriable_error(exception: Exception) -> bool:
    """
    Only provider errors flagged retriable are retried.

    Timeouts, connection failures and 5xx responses carry the flag;
    4xx responses and malformed payloads do not.
    """
    return isinstance(exception, UpstreamModelError) and exception.retriable


def retry_with_backoff(
    func: Callable,
    policy: RetryPolicy = EMBEDDING_RETRY_POLICY,
    exceptions: Tuple[Type[Exception], ...] = (UpstreamModelError,),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Call func until it succeeds or the policy runs out.

    Args:
        func: Zero-argument callable
        policy: Attempt count and backoff shape
        exceptions: Exception types considered for a retry; anything
            else propagates untouched
        on_retry: Optional callback(retry, exception, delay) before each wait
        sleep: Sleep function (injectable for tests)

    Returns:
        Result of func()

    Raises:
        RetryExhausted: If every attempt failed with a retriable error
        Exception: The first non-retriable error, as raised
    """
    last_exception = None

    for attempt in range(policy.max_attempts):
        try:
            return func()
        except exceptions as e:
            if not is_retriable_error(e):
                logger.warning(f"Non-retriable error on attempt {attempt + 1}: {e}")
                raise
            last_exception = e

        if attempt == policy.max_retries:
            break

        delay = policy.backoff(attempt)
        logger.warning(
            f"Attempt {attempt + 1}/{policy.max_attempts} failed: {last_exception}. "
            f"Retrying in {delay:.2f}s"
        )
        if on_retry:
            on_retry(attempt, last_exception, delay)
        sleep(delay)

    raise RetryExhausted(
        f"All {policy.max_attempts} attempts failed. Last error: {last_exception}",
        attempts=policy.max_attempts,
        last_exception=last_exception
    )
