"""Backoff policy and rate-limit helpers shared by the listing and sync retry loops.

This module provides the delay calculation used whenever an operation is retried
(exponential growth, a cap, and optional jitter) and the logic that reads GitHub's
rate-limit headers to find out how long to wait.
"""

import random
import time
from dataclasses import dataclass
from typing import Mapping

import structlog

from gh_backup.utils.constants import DEFAULT_INITIAL_DELAY, DEFAULT_MAX_DELAY, DEFAULT_SYNC_ATTEMPTS

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with a capped delay and a bounded number of attempts.

    Args:
        max_attempts: Total attempts allowed, including the first one
        initial_delay: Delay in seconds after the first failed attempt
        max_delay: Maximum delay in seconds between attempts
        exponential_base: Growth factor applied per failed attempt
        jitter: Randomize each delay within the upper half of its range

    Example:
        policy = BackoffPolicy(max_attempts=4, initial_delay=2.0)
        policy.delay_for(1)  # between 1.0 and 2.0 seconds
        policy.delay_for(3)  # between 4.0 and 8.0 seconds
    """

    max_attempts: int = DEFAULT_SYNC_ATTEMPTS
    initial_delay: float = DEFAULT_INITIAL_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    exponential_base: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        """Validate the policy values."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("Backoff delays must not be negative")
        if self.exponential_base < 1:
            raise ValueError("exponential_base must be at least 1")

    def ceiling_for(self, attempt: int) -> float:
        """Return the un-jittered delay that follows the given failed attempt (1-based)."""
        exponent = max(attempt - 1, 0)
        return min(self.initial_delay * self.exponential_base**exponent, self.max_delay)

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """Return the delay to wait after the given failed attempt (1-based)."""
        ceiling = self.ceiling_for(attempt)
        if not self.jitter:
            return ceiling
        source = rng or random
        return source.uniform(ceiling / 2, ceiling)

    def allows_retry_after(self, attempt: int) -> bool:
        """Return whether another attempt may follow the given failed attempt."""
        return attempt < self.max_attempts


def rate_limit_wait_from_headers(headers: Mapping[str, str], now: float | None = None) -> float | None:
    """Return the number of seconds GitHub asks us to wait, or None if the headers do not say.

    The ``retry-after`` header wins. Otherwise ``x-ratelimit-reset`` (a UNIX timestamp) is
    turned into a wait relative to ``now``.
    """
    retry_after = headers.get("retry-after")
    if retry_after:
        try:
            wait_time = max(float(retry_after), 0.0)
            logger.debug("Using retry-after header value", retry_after=wait_time)
            return wait_time
        except ValueError:
            logger.warning("Invalid retry-after header value", retry_after=retry_after)

    rate_limit_reset = headers.get("x-ratelimit-reset")
    if rate_limit_reset:
        try:
            reset_timestamp = int(rate_limit_reset)
        except ValueError:
            logger.warning("Invalid x-ratelimit-reset header value", rate_limit_reset=rate_limit_reset)
            return None
        current_timestamp = int(now if now is not None else time.time())
        wait_time = float(max(reset_timestamp - current_timestamp + 1, 0))
        logger.debug("Using x-ratelimit-reset header", wait_time=wait_time)
        return wait_time

    return None
