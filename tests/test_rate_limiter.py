"""Tests for the minimum-interval rate limiter."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from poi_pipeline.utils.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_limiter(interval: float = 1.0):
    clock = FakeClock()
    return RateLimiter(interval, name="test", clock=clock, sleep=clock.sleep), clock


def test_first_call_does_not_wait():
    limiter, clock = make_limiter()
    assert limiter.wait() == 0.0
    assert clock.sleeps == []
    assert limiter.last_request_time == 100.0


def test_back_to_back_calls_are_spaced():
    limiter, clock = make_limiter(1.0)
    limiter.wait()
    assert limiter.wait() == pytest.approx(1.0)
    assert clock.now == pytest.approx(101.0)


def test_partial_wait_after_elapsed_time():
    limiter, clock = make_limiter(1.0)
    limiter.wait()
    clock.now += 0.4
    assert limiter.wait() == pytest.approx(0.6)


def test_no_wait_after_interval_passed():
    limiter, clock = make_limiter(1.0)
    limiter.wait()
    clock.now += 5
    assert limiter.wait() == 0.0


def test_context_manager_waits():
    limiter, clock = make_limiter(1.0)
    with limiter:
        pass
    with limiter:
        pass
    assert clock.sleeps == [pytest.approx(1.0)]


def test_negative_interval_rejected():
    with pytest.raises(ValueError):
        RateLimiter(-1)
