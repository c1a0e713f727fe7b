"""
Unit test fixtures.

All unit tests should be:
- Fast (< 100ms)
- Isolated (no external dependencies)
- Deterministic (same result every time)
"""

import random

import pytest
from datetime import datetime, timezone

from remote import RemoteCaller, RetryConfig, RetryPolicy


class FakeClock:
    """Monotonic clock that only moves when slept on."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fixed_time():
    """Fixed datetime for deterministic tests."""
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fast_config():
    """Retry config with the background shape but tiny delays."""
    return RetryConfig(max_attempts=7, base_delay=1.0, max_delay=32.0,
                       base_timeout=45.0, max_timeout=120.0, timeout_multiplier=1.5)


@pytest.fixture
def policy(fast_config):
    return RetryPolicy(fast_config, rng=random.Random(42))


@pytest.fixture
def caller(policy, clock):
    """RemoteCaller whose backoff sleeps advance the fake clock."""
    return RemoteCaller(policy, sleep=clock.sleep, name="RemoteCaller:test")

