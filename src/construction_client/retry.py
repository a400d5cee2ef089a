"""
Retry policy for idempotent reads.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .errors import ApiError, ClientError, NetworkError, ServerError
from .types import RequestDescriptor

logger = logging.getLogger("construction_client.retry")

# Methods that are retried. Only reads: a retried POST could duplicate a side effect.
RETRY_METHODS = frozenset(["GET"])

Sleep = Callable[[float], Awaitable[None]]


def is_retryable_method(method: str) -> bool:
    return method.upper() in RETRY_METHODS


def is_retryable_status(status: int) -> bool:
    return status == 429 or 500 <= status < 600


def is_retryable_error(error: ApiError) -> bool:
    """Network failures, 5xx and 429 are transient; everything else is final."""
    if isinstance(error, (NetworkError, ServerError)):
        return True
    if isinstance(error, ClientError) and error.status is not None:
        return is_retryable_status(error.status)
    return False


class RetryPolicy:
    """
    Bounded exponential backoff for GET requests.

    Delay before retry ``n`` (1-based) is ``min(base * 2^(n-1), cap)``, so the
    defaults give 1s, 2s, 4s.

    Example:
        policy = RetryPolicy(max_retries=3, base_delay_seconds=1.0, max_delay_seconds=5.0)
        if policy.should_retry(descriptor, error):
            await policy.sleep(policy.next_delay(descriptor))
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 5.0,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self._sleep = sleep or asyncio.sleep

    def calculate_backoff_delay(self, attempt: int) -> float:
        """
        Delay in seconds before the given retry.

        Args:
            attempt: Retry number, starting at 1

        Returns:
            Delay in seconds
        """
        exponent = max(attempt - 1, 0)
        return min(self.base_delay_seconds * (2 ** exponent), self.max_delay_seconds)

    def should_retry(self, descriptor: RequestDescriptor, error: ApiError) -> bool:
        if descriptor.cancelled:
            return False
        if not is_retryable_method(descriptor.method):
            return False
        if descriptor.retry_count >= self.max_retries:
            return False
        return is_retryable_error(error)

    def next_delay(self, descriptor: RequestDescriptor) -> float:
        """Count the retry on the descriptor and return its delay."""
        descriptor.retry_count += 1
        delay = self.calculate_backoff_delay(descriptor.retry_count)
        logger.debug(
            f"RetryPolicy: {descriptor.method} {descriptor.path} "
            f"retry {descriptor.retry_count}/{self.max_retries} in {delay:.3f}s"
        )
        return delay

    def sleep(self, delay: float) -> Awaitable[None]:
        return self._sleep(delay)
