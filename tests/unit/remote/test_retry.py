"""
Tests for RetryPolicy and failure classification.
"""

import random

import pytest
import requests

from remote import ErrorCategory, HttpStatusError, RemoteError, RetryConfig, RetryPolicy, RetryReason
from remote.errors import JobFailedError, classify_http_status, to_remote_error


class TestClassification:
    """Which failures are retried."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_status_codes(self, policy, status):
        decision = policy.classify(HttpStatusError(status, "boom"), attempt=1)
        assert decision.should_retry
        assert decision.status_code == status

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_errors_not_retried(self, policy, status):
        decision = policy.classify(HttpStatusError(status, "nope"), attempt=1)
        assert not decision.should_retry
        assert decision.delay == 0.0

    @pytest.mark.parametrize("error", [
        requests.exceptions.ConnectionError("connection reset by peer"),
        ConnectionResetError("reset"),
        ConnectionRefusedError("refused"),
        Exception("Failed to fetch"),
        Exception("getaddrinfo ENOTFOUND api.example.com"),
    ])
    def test_network_errors_retried(self, policy, error):
        decision = policy.classify(error, attempt=1)
        assert decision.should_retry
        assert decision.reason == RetryReason.NETWORK

    @pytest.mark.parametrize("error", [
        requests.exceptions.ReadTimeout("read timed out"),
        TimeoutError(),
        Exception("Request timeout after 30000ms"),
    ])
    def test_timeouts_retried(self, policy, error):
        decision = policy.classify(error, attempt=1)
        assert decision.should_retry
        assert decision.reason == RetryReason.TIMEOUT

    def test_status_code_argument_overrides_exception_type(self, policy):
        decision = policy.classify(Exception("gateway"), status_code=503)
        assert decision.should_retry
        assert decision.reason == RetryReason.SERVER_ERROR
        assert decision.reason_label == "server-error-503"

    def test_unknown_error_not_retried(self, policy):
        decision = policy.classify(Exception("something odd"), attempt=1)
        assert not decision.should_retry
        assert decision.reason == RetryReason.UNKNOWN

    def test_last_attempt_not_retried(self, policy):
        decision = policy.classify(HttpStatusError(503), attempt=policy.max_attempts)
        assert not decision.should_retry
        assert decision.error.is_transient

    def test_rate_limit_label(self, policy):
        decision = policy.classify(HttpStatusError(429), attempt=1)
        assert decision.reason_label == "rate-limited"


class TestHttpStatusMapping:

    def test_forbidden_body_decides_category(self):
        assert classify_http_status(403, "Quota exhausted for this month") == ErrorCategory.QUOTA_EXHAUSTED
        assert classify_http_status(403, "License expired") == ErrorCategory.LICENSE_EXPIRED
        assert classify_http_status(403, "key is inactive") == ErrorCategory.LICENSE_INACTIVE
        assert classify_http_status(403, "forbidden") == ErrorCategory.AUTH_FAILURE

    def test_unauthorized(self):
        assert classify_http_status(401) == ErrorCategory.AUTH_FAILURE

    def test_not_found(self):
        assert classify_http_status(404) == ErrorCategory.NOT_FOUND

    def test_remote_error_passes_through(self):
        original = RemoteError("x", ErrorCategory.QUOTA_EXHAUSTED)
        assert to_remote_error(original) is original

    def test_backend_outage_job_failure(self):
        assert JobFailedError("SSL handshake failed").category == ErrorCategory.BACKEND_UNAVAILABLE
        assert JobFailedError("n8n workflow error").category == ErrorCategory.BACKEND_UNAVAILABLE
        assert JobFailedError("bad input").category == ErrorCategory.UNKNOWN

    def test_user_message_includes_detail_for_validation(self):
        message = RemoteError("missing field 'query'", ErrorCategory.VALIDATION).user_message()
        assert "missing field 'query'" in message

    def test_user_message_for_quota_points_to_dashboard(self):
        message = RemoteError("403", ErrorCategory.QUOTA_EXHAUSTED).user_message()
        assert "dashboard" in message


class TestBackoff:

    def test_nominal_delay_doubles(self, policy):
        assert [policy.nominal_delay(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 8.0]

    def test_nominal_delay_non_decreasing(self, policy):
        delays = [policy.nominal_delay(n) for n in range(1, 10)]
        assert delays == sorted(delays)

    def test_jitter_within_bounds_and_capped(self, fast_config):
        policy = RetryPolicy(fast_config, rng=random.Random(7))
        for attempt in range(1, 8):
            nominal = policy.nominal_delay(attempt)
            lower = min(nominal * 0.75, fast_config.max_delay)
            upper = min(nominal * 1.25, fast_config.max_delay)
            for _ in range(50):
                delay = policy.backoff_delay(attempt)
                assert lower <= delay <= upper

    def test_interactive_shape_caps_at_two_seconds(self):
        policy = RetryPolicy(RetryConfig(max_attempts=3, base_delay=0.5, max_delay=2.0,
                                         base_timeout=30.0, max_timeout=60.0))
        assert all(policy.backoff_delay(n) <= 2.0 for n in range(1, 10))


class TestTimeoutEscalation:

    def test_escalates_by_multiplier(self, policy):
        assert policy.escalate_timeout(45.0) == pytest.approx(67.5)

    def test_escalation_capped(self, policy):
        timeout = 45.0
        for _ in range(10):
            timeout = policy.escalate_timeout(timeout)
        assert timeout == 120.0
