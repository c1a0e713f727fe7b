"""
Retry policy - decides whether a failed remote call is retried, and when.

Pure decision logic. No sleeping, no I/O; RemoteCaller does that.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ErrorCategory, RemoteError, to_remote_error


class RetryReason(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate-limited"
    SERVER_ERROR = "server-error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RetryConfig:
    """Backoff and timeout knobs for one class of calls."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 32.0
    base_timeout: float = 45.0
    max_timeout: float = 120.0
    timeout_multiplier: float = 1.5
    jitter: float = 0.25


@dataclass(frozen=True)
class RetryDecision:
    should_retry: bool
    delay: float
    reason: RetryReason
    status_code: Optional[int] = None
    error: Optional[RemoteError] = None

    @property
    def reason_label(self) -> str:
        """e.g. 'server-error-503', 'timeout'."""
        if self.reason == RetryReason.SERVER_ERROR and self.status_code:
            return f"server-error-{self.status_code}"
        return self.reason.value


_REASONS = {
    ErrorCategory.TRANSIENT_NETWORK: RetryReason.NETWORK,
    ErrorCategory.TIMEOUT: RetryReason.TIMEOUT,
    ErrorCategory.RATE_LIMITED: RetryReason.RATE_LIMITED,
    ErrorCategory.SERVER_ERROR: RetryReason.SERVER_ERROR,
}


class RetryPolicy:
    """
    Classifies failures and computes backoff.

    Delay for attempt n (1-based) is base * 2^(n-1), jittered by +/-25%,
    capped at max_delay.
    """

    def __init__(self, config: RetryConfig = None, rng: random.Random = None):
        self.config = config or RetryConfig()
        self._rng = rng or random.Random()

    @property
    def max_attempts(self) -> int:
        return self.config.max_attempts

    def nominal_delay(self, attempt: int) -> float:
        """Un-jittered, uncapped delay after the given attempt."""
        return self.config.base_delay * (2 ** (attempt - 1))

    def backoff_delay(self, attempt: int) -> float:
        nominal = self.nominal_delay(attempt)
        spread = nominal * self.config.jitter * (self._rng.random() * 2 - 1)
        return max(0.0, min(nominal + spread, self.config.max_delay))

    def escalate_timeout(self, current_timeout: float) -> float:
        return min(current_timeout * self.config.timeout_multiplier, self.config.max_timeout)

    def classify(self, error: BaseException, status_code: Optional[int] = None,
                 attempt: int = 1) -> RetryDecision:
        """
        Decide what to do after `attempt` failed with `error`.

        should_retry is False for terminal categories and once the attempt
        budget is spent.
        """
        remote = to_remote_error(error, status_code)
        code = status_code if status_code is not None else remote.status_code
        reason = _REASONS.get(remote.category, RetryReason.UNKNOWN)

        retryable = remote.is_transient
        if retryable and attempt < self.config.max_attempts:
            return RetryDecision(True, self.backoff_delay(attempt), reason, code, remote)
        return RetryDecision(False, 0.0, reason, code, remote)
