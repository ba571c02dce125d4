"""Resilience patterns."""

from loomsync.core.patterns.retry import ExponentialBackoffRetry, RetryConfig, RetryState

__all__ = ["ExponentialBackoffRetry", "RetryConfig", "RetryState"]
