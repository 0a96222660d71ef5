"""Utility modules for shared functionality."""

from .retry import BackoffPolicy, rate_limit_wait_from_headers

__all__ = [
    "BackoffPolicy",
    "rate_limit_wait_from_headers",
]
