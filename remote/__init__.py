"""
Remote service access - retry policy, caller, HTTP client, content helpers.
"""

from .errors import ErrorCategory, RemoteError, HttpStatusError, JobFailedError, CancelledError
from .retry import RetryConfig, RetryDecision, RetryPolicy, RetryReason
from .caller import RemoteCaller, RetryNotice

__all__ = [
    "ErrorCategory",
    "RemoteError",
    "HttpStatusError",
    "JobFailedError",
    "CancelledError",
    "RetryConfig",
    "RetryDecision",
    "RetryPolicy",
    "RetryReason",
    "RemoteCaller",
    "RetryNotice",
]
