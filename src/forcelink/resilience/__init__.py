"""
Resilience patterns for the request pipeline.

Provides:
- RetryPolicy: jittered exponential backoff and attempt limits
- CancellationToken: cooperative cancellation with deadlines
"""

from forcelink.resilience.cancellation import NEVER, CancellationToken
from forcelink.resilience.retry import DEFAULT_RETRY_POLICY, RetryPolicy

__all__ = [
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
    "CancellationToken",
    "NEVER",
]
