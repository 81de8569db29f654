from __future__ import annotations

from rto_validator.pipeline.rate_limit import MinIntervalRateLimiter, NoopRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_first_call_is_immediate_and_later_calls_are_spaced() -> None:
    clock = FakeClock()
    limiter = MinIntervalRateLimiter(
        min_interval_seconds=1.0, clock=clock, sleep_fn=clock.sleep
    )

    assert limiter.acquire() == 0.0
    clock.now += 0.25
    waited = limiter.acquire()
    third = limiter.acquire()

    assert waited == 0.75
    assert third == 1.0
    assert clock.sleeps == [0.75, 1.0]


def test_no_wait_when_interval_already_elapsed() -> None:
    clock = FakeClock()
    limiter = MinIntervalRateLimiter(
        min_interval_seconds=1.0, clock=clock, sleep_fn=clock.sleep
    )

    limiter.acquire()
    clock.now += 5.0

    assert limiter.acquire() == 0.0
    assert clock.sleeps == []


def test_noop_rate_limiter_never_waits() -> None:
    limiter = NoopRateLimiter()

    assert [limiter.acquire() for _ in range(3)] == [0.0, 0.0, 0.0]
