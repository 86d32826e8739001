"""Automatic retry policy for failed worker runs."""

from __future__ import annotations

import random
from dataclasses import dataclass

# Worker error text that indicates a transient failure
RETRYABLE_PATTERNS = frozenset(
    {
        "timeout",
        "timed out",
        "connection reset",
        "connection refused",
        "connection error",
        "temporary failure",
        "429",
        "too many requests",
        "503",
        "service unavailable",
        "network",
        "ssl error",
        "incomplete read",
        "fragment",
    }
)

# Worker error text that no amount of retrying will fix
PERMANENT_PATTERNS = frozenset(
    {
        "404",
        "not found",
        "video unavailable",
        "private video",
        "is private",
        "age restricted",
        "age-restricted",
        "copyright",
        "removed",
        "deleted",
        "blocked",
        "geo restricted",
        "members only",
        "available to members",
        "sign in",
        "login required",
        "unsupported url",
        "no space left",
    }
)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff configuration for automatic retries.

    The attempt budget comes from `Settings.max_retries`; this only
    controls the spacing between attempts.

    Attributes:
        base_delay: Delay in seconds before the first retry.
        max_delay: Cap on any single delay.
        jitter: Whether to add up to one second of random jitter.
    """

    base_delay: float = 2.0
    max_delay: float = 60.0
    jitter: bool = True

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )

    def delay_for_attempt(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-indexed).

        delay = min(base * 2^attempt, max_delay), plus jitter if enabled.
        """
        attempt = max(attempt, 0)
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, 1)  # nosec B311 - jitter, not security
        return delay

    def should_retry(self, error: str, retries_done: int, max_retries: int) -> bool:
        """Decide whether a failed run gets another automatic attempt."""
        return retries_done < max_retries and is_retryable_error(error)


def is_retryable_error(error: str) -> bool:
    """Check if worker error text looks transient.

    Permanent patterns win over retryable ones.
    """
    if not error or is_permanent_error(error):
        return False
    error_lower = error.lower()
    return any(pattern in error_lower for pattern in RETRYABLE_PATTERNS)


def is_permanent_error(error: str) -> bool:
    if not error:
        return False
    error_lower = error.lower()
    return any(pattern in error_lower for pattern in PERMANENT_PATTERNS)
