"""
Error Recovery Module

Provides error classification and bounded retry logic for chain reads.
"""

from .errors import (
    ErrorCategory,
    ErrorContext,
    RecoverableError,
    UnrecoverableError,
    RateLimitError,
    NetworkError,
    TimeoutError,
    TransactionRevertedError,
    classify_error,
)
from .strategies import (
    RetryConfig,
    RetryStrategy,
    ExponentialBackoffStrategy,
)

__all__ = [
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "RecoverableError",
    "UnrecoverableError",
    "RateLimitError",
    "NetworkError",
    "TimeoutError",
    "TransactionRevertedError",
    "classify_error",
    # Strategies
    "RetryConfig",
    "RetryStrategy",
    "ExponentialBackoffStrategy",
]
