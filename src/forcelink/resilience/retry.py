"""
Retry policy with jittered exponential backoff.

The executor owns the retry loop; this module only answers two questions:
how long to wait before the next attempt, and whether another attempt is
allowed. Classification (what is retryable) lives in forcelink.errors.
"""

import random
from dataclasses import dataclass, field

from forcelink.errors.exceptions import ConfigurationError, ForceLinkError


def coerce_bool(value) -> bool:
    # bool('false') would be True, so strings need explicit handling
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def coerce_statuses(value) -> frozenset[int]:
    if value is None or value == "":
        return frozenset()
    if isinstance(value, str):
        value = [part for part in value.replace(" ", "").split(",") if part]
    return frozenset(int(v) for v in value)


@dataclass
class RetryPolicy:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Total attempts per logical call, first try included
        base_delay: Seconds before the first retry (before jitter)
        max_delay: Upper bound on any single wait
        jitter: Fractional spread applied around the exponential delay
        respect_retry_after: Prefer the server's Retry-After hint when present
        non_retryable_statuses: 5xx codes treated as fatal instead of retried
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.2
    respect_retry_after: bool = True
    non_retryable_statuses: frozenset[int] = field(default_factory=frozenset)

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.jitter = float(self.jitter)
        self.respect_retry_after = coerce_bool(self.respect_retry_after)
        self.non_retryable_statuses = coerce_statuses(self.non_retryable_statuses)

        if self.max_attempts < 1:
            raise ConfigurationError(
                f"max_attempts must be at least 1, got {self.max_attempts}"
            )
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("Retry delays must not be negative")
        if not 0.0 <= self.jitter <= 1.0:
            raise ConfigurationError(
                f"jitter must be between 0 and 1, got {self.jitter}"
            )

    def compute_delay(
        self, attempt: int, suggested_delay: float | None = None
    ) -> float:
        """
        Calculate the wait before the next attempt.

        Exponential growth with a symmetric random spread so that callers
        that failed together do not retry together.

        Args:
            attempt: 0-indexed number of the attempt that just failed
            suggested_delay: Server-provided delay in seconds (Retry-After)

        Returns:
            Delay in seconds, within [0, max_delay]
        """
        if self.respect_retry_after and suggested_delay is not None:
            return min(max(suggested_delay, 0.0), self.max_delay)

        base = self.base_delay * (2**attempt)
        delay = base * random.uniform(1.0 - self.jitter, 1.0 + self.jitter)
        return max(0.0, min(delay, self.max_delay))

    def should_retry(self, error: ForceLinkError, attempt: int) -> bool:
        """
        Determine if another attempt is allowed.

        Args:
            error: The classified error from the failed attempt
            attempt: 0-indexed attempt that just failed
        """
        if attempt >= self.max_attempts - 1:
            return False
        return error.is_retryable

    def uses_server_delay(self, suggested_delay: float | None) -> bool:
        return self.respect_retry_after and suggested_delay is not None


DEFAULT_RETRY_POLICY = RetryPolicy()


__all__ = [
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
]
