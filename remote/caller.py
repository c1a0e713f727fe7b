"""
RemoteCaller - runs one network call under a RetryPolicy.

The wrapped callable receives the timeout to use for this attempt and
either returns a result or raises. Non-2xx responses should be raised as
HttpStatusError so the policy can see the status code.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .errors import CancelledError, ErrorCategory, RemoteError, to_remote_error
from .retry import RetryPolicy, RetryReason

T = TypeVar("T")


@dataclass
class RetryNotice:
    """Passed to the retry observer before each backoff sleep."""
    attempt: int
    max_attempts: int
    reason: str
    delay: float
    timeout: float

    def describe(self) -> str:
        if self.reason == RetryReason.TIMEOUT.value:
            text = "Request takes longer than usual, please wait"
        elif self.reason == RetryReason.NETWORK.value:
            text = "Network connection lost"
        elif self.reason.startswith(RetryReason.SERVER_ERROR.value):
            text = "Server temporarily unavailable"
        elif self.reason == RetryReason.RATE_LIMITED.value:
            text = "Rate limited"
        else:
            text = "Network interrupted"
        return f"{text}. Retrying in {round(self.delay)}s... (attempt {self.attempt + 1}/{self.max_attempts})"


RetryObserver = Callable[[RetryNotice], None]


class RemoteCaller:
    """
    Retry loop around a single remote call.

    Handles:
    - Exponential backoff with jitter between attempts
    - Timeout escalation after a timeout failure (kept for the rest of the sequence)
    - Retry notifications to an observer
    - Cancellation via a threading.Event that interrupts backoff sleeps
    """

    def __init__(self, policy: RetryPolicy, sleep: Callable[[float], None] = time.sleep,
                 name: str = "RemoteCaller"):
        self.policy = policy
        self.name = name
        self._sleep = sleep

    def _wait(self, delay: float, cancel: Optional[threading.Event]) -> None:
        if cancel is None:
            self._sleep(delay)
            return
        if cancel.wait(delay):
            raise CancelledError()

    def attempt_once(self, fn: Callable[[float], T], timeout: Optional[float] = None) -> T:
        """Single attempt, no retry. Failures come back as RemoteError."""
        try:
            return fn(timeout or self.policy.config.base_timeout)
        except RemoteError:
            raise
        except Exception as e:
            raise to_remote_error(e) from e

    def call(self, fn: Callable[[float], T], on_retry: Optional[RetryObserver] = None,
             cancel: Optional[threading.Event] = None) -> T:
        max_attempts = self.policy.max_attempts
        timeout = self.policy.config.base_timeout
        escalated = False
        last: Optional[RemoteError] = None

        for attempt in range(1, max_attempts + 1):
            if cancel is not None and cancel.is_set():
                raise CancelledError()
            if escalated:
                print(f"[{self.name}] Attempt {attempt}/{max_attempts} with {timeout:.0f}s timeout")

            try:
                return fn(timeout)
            except Exception as e:
                decision = self.policy.classify(e, attempt=attempt)
                last = decision.error
                print(f"[{self.name}] Attempt {attempt}/{max_attempts} failed ({decision.reason_label}): {e}")

                if decision.reason == RetryReason.TIMEOUT and last.is_transient:
                    timeout = self.policy.escalate_timeout(timeout)
                    escalated = True

                if not decision.should_retry:
                    break

                notice = RetryNotice(attempt, max_attempts, decision.reason_label, decision.delay, timeout)
                if on_retry:
                    try:
                        on_retry(notice)
                    except Exception as cb_error:
                        print(f"[{self.name}] Retry observer error: {cb_error}")
                self._wait(decision.delay, cancel)

        if last is None:
            last = RemoteError("No attempts made", ErrorCategory.UNKNOWN)
        if last.is_transient:
            print(f"[{self.name}] All {max_attempts} attempts exhausted: {last}")
            raise RemoteError(
                f"failed after {max_attempts} attempts: {last}", last.category, last.status_code
            ) from last
        raise last
