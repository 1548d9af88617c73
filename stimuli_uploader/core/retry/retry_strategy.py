"""Retry strategies using Strategy Pattern."""
import asyncio
from abc import ABC, abstractmethod

from ..exceptions import TransportError


class RetryStrategy(ABC):
    """Abstract retry strategy."""

    def should_retry(self, error: TransportError, retry_count: int, max_retries: int) -> bool:
        """Retries transient failures while the retry budget lasts."""
        return bool(getattr(error, 'retryable', False)) and retry_count < max_retries

    @abstractmethod
    def get_delay(self, retry_count: int) -> float:
        """Returns seconds to wait before the given retry attempt."""
        pass

    async def wait_async(self, retry_count: int):
        """Waits before retry (async)."""
        delay = self.get_delay(retry_count)
        if delay > 0:
            await asyncio.sleep(delay)


class ImmediateRetryStrategy(RetryStrategy):
    """Resubmits without waiting."""

    def get_delay(self, retry_count: int) -> float:
        return 0.0


class FixedDelayStrategy(RetryStrategy):
    """Waits the same amount of time before every retry."""

    def __init__(self, delay: float = 1.0):
        self.delay = delay

    def get_delay(self, retry_count: int) -> float:
        return self.delay


class ExponentialBackoffStrategy(RetryStrategy):
    """Exponential backoff retry strategy."""

    def __init__(
        self,
        base_delay: float = 1.0,
        exponential_base: float = 2.0,
        max_delay: float = 16.0
    ):
        self.base_delay = base_delay
        self.exponential_base = exponential_base
        self.max_delay = max_delay

    def get_delay(self, retry_count: int) -> float:
        """Waits base_delay * base**retry_count, capped at max_delay."""
        delay = self.base_delay * (self.exponential_base ** retry_count)
        return min(delay, self.max_delay)
