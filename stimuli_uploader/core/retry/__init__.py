"""Retry strategies using Strategy Pattern."""
from .retry_strategy import (
    RetryStrategy,
    ImmediateRetryStrategy,
    FixedDelayStrategy,
    ExponentialBackoffStrategy,
)

__all__ = [
    'RetryStrategy',
    'ImmediateRetryStrategy',
    'FixedDelayStrategy',
    'ExponentialBackoffStrategy',
]
