"""
Tests for RemoteCaller - the retry loop around one call.
"""

import threading

import pytest
import requests

from remote import CancelledError, ErrorCategory, HttpStatusError, RemoteCaller, RemoteError, RetryNotice


class Script:
    """Callable that plays back a list of outcomes, recording each timeout it got."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.timeouts = []

    def __call__(self, timeout):
        self.timeouts.append(timeout)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class TestCall:

    def test_first_success_returns_immediately(self, caller, clock):
        fn = Script("ok")
        assert caller.call(fn) == "ok"
        assert fn.timeouts == [45.0]
        assert clock.sleeps == []

    def test_retries_transient_then_succeeds(self, caller, clock):
        fn = Script(HttpStatusError(503), HttpStatusError(502), "done")
        assert caller.call(fn) == "done"
        assert len(fn.timeouts) == 3
        assert len(clock.sleeps) == 2

    def test_terminal_error_not_retried(self, caller):
        fn = Script(HttpStatusError(401, "bad key"), "never")
        with pytest.raises(RemoteError) as exc:
            caller.call(fn)
        assert exc.value.category == ErrorCategory.AUTH_FAILURE
        assert len(fn.timeouts) == 1

    def test_exhaustion_keeps_category_and_mentions_attempts(self, caller):
        fn = Script(*[HttpStatusError(500)] * 7)
        with pytest.raises(RemoteError) as exc:
            caller.call(fn)
        assert exc.value.category == ErrorCategory.SERVER_ERROR
        assert "failed after 7 attempts" in str(exc.value)
        assert len(fn.timeouts) == 7

    def test_timeout_escalation_persists(self, caller):
        fn = Script(requests.exceptions.ReadTimeout("timed out"), HttpStatusError(503), "ok")
        caller.call(fn)
        # 45 -> 67.5 after the timeout, and it stays raised after the 503
        assert fn.timeouts == [45.0, 67.5, 67.5]

    def test_timeout_escalation_caps(self, caller):
        fn = Script(*[TimeoutError("timed out")] * 6, "ok")
        caller.call(fn)
        assert max(fn.timeouts) == 120.0
        assert fn.timeouts == sorted(fn.timeouts)

    def test_observer_notified_before_each_sleep(self, caller):
        notices = []
        fn = Script(HttpStatusError(503), requests.exceptions.ConnectionError("reset"), "ok")
        caller.call(fn, on_retry=notices.append)

        assert [n.attempt for n in notices] == [1, 2]
        assert notices[0].reason == "server-error-503"
        assert notices[1].reason == "network"
        assert notices[0].max_attempts == 7

    def test_observer_error_does_not_stop_retry(self, caller):
        def broken(notice):
            raise RuntimeError("ui went away")

        fn = Script(HttpStatusError(503), "ok")
        assert caller.call(fn, on_retry=broken) == "ok"

    def test_cancel_before_first_attempt(self, caller):
        cancel = threading.Event()
        cancel.set()
        fn = Script("never")
        with pytest.raises(CancelledError):
            caller.call(fn, cancel=cancel)
        assert fn.timeouts == []

    def test_cancel_interrupts_backoff(self, policy):
        cancel = threading.Event()
        caller = RemoteCaller(policy)

        def fail_and_cancel(timeout):
            cancel.set()
            raise HttpStatusError(503)

        with pytest.raises(CancelledError):
            caller.call(fail_and_cancel, cancel=cancel)


class TestAttemptOnce:

    def test_wraps_plain_exceptions(self, caller):
        with pytest.raises(RemoteError) as exc:
            caller.attempt_once(Script(ConnectionResetError("reset")))
        assert exc.value.category == ErrorCategory.TRANSIENT_NETWORK

    def test_uses_base_timeout_by_default(self, caller):
        fn = Script("ok")
        caller.attempt_once(fn)
        assert fn.timeouts == [45.0]


class TestRetryNotice:

    def test_describe_timeout(self):
        text = RetryNotice(1, 7, "timeout", 1.2, 67.5).describe()
        assert text.startswith("Request takes longer than usual")
        assert "(attempt 2/7)" in text

    def test_describe_server_error(self):
        text = RetryNotice(2, 3, "server-error-502", 2.0, 30.0).describe()
        assert "Server temporarily unavailable" in text
        assert "Retrying in 2s" in text
