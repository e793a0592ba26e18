import pytest

from services.errors import RateLimitedError
from services.rate_limit import SubmitRateLimiter


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


def test_first_attempt_allowed():
    limiter = SubmitRateLimiter(2.0, clock=FakeClock())
    assert limiter.try_acquire() is True


def test_second_attempt_inside_window_rejected():
    clock = FakeClock()
    limiter = SubmitRateLimiter(2.0, clock=clock)
    limiter.acquire()
    clock.now += 1.9
    with pytest.raises(RateLimitedError) as exc:
        limiter.acquire()
    assert exc.value.message == "Please wait before trying again"


def test_window_measured_from_last_accepted_attempt():
    clock = FakeClock()
    limiter = SubmitRateLimiter(2.0, clock=clock)
    limiter.acquire()
    clock.now += 1.5
    assert limiter.try_acquire() is False
    clock.now += 0.5
    assert limiter.try_acquire() is True


def test_reset_clears_window():
    limiter = SubmitRateLimiter(2.0, clock=FakeClock())
    limiter.acquire()
    limiter.reset()
    assert limiter.try_acquire() is True
