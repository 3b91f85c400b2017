import pytest
from redact_pro.ratelimit import RateLimiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(limit=2, window_seconds=60, clock=clock)


def test_allows_up_to_limit(limiter):
    first = limiter.check("1.2.3.4")
    second = limiter.check("1.2.3.4")
    third = limiter.check("1.2.3.4")
    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert (third.allowed, third.remaining) == (False, 0)
    assert third.reset_at == 1060.0


def test_keys_are_independent(limiter):
    limiter.check("a")
    limiter.check("a")
    assert not limiter.check("a").allowed
    assert limiter.check("b").allowed


def test_window_expires(limiter, clock):
    limiter.check("a")
    limiter.check("a")
    clock.now += 61
    decision = limiter.check("a")
    assert decision.allowed
    assert decision.remaining == 1
    assert decision.reset_at == clock.now + 60


def test_peek_does_not_count(limiter):
    assert limiter.peek("a").remaining == 2
    limiter.check("a")
    assert limiter.peek("a").remaining == 1
    assert limiter.peek("a").remaining == 1


def test_sweep_drops_expired_windows(limiter, clock):
    limiter.check("a")
    limiter.check("b")
    assert len(limiter) == 2
    clock.now += 61
    assert limiter.sweep() == 2
    assert len(limiter) == 0


def test_reset(limiter):
    limiter.check("a")
    limiter.reset()
    assert len(limiter) == 0


def test_headers(limiter):
    headers = limiter.check("a").headers()
    assert headers == {
        "X-RateLimit-Limit": "2",
        "X-RateLimit-Remaining": "1",
        "X-RateLimit-Reset": "1060",
    }


def test_sweeper_thread_starts_and_stops(limiter):
    limiter.start_sweeper(interval=0.01)
    limiter.start_sweeper(interval=0.01)
    limiter.stop()
    limiter.stop()
