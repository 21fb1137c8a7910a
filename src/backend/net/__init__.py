"""
Network utilities: retry with exponential backoff.
"""

from .retry import (
    RetryConfig,
    RetryableError,
    with_retry,
)

__all__ = [
    "RetryConfig",
    "RetryableError",
    "with_retry",
]
