import pytest

from moviedb.core.rate_limit import QuotaTracker, parse_retry_after


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_try_admit_decrements_until_exhausted():
    tracker = QuotaTracker(ceiling=2, window=10.0, clock=FakeClock())

    assert tracker.try_admit() is True
    assert tracker.try_admit() is True
    assert tracker.try_admit() is False
    assert tracker.remaining == 0


def test_window_elapsed_resets_once_per_window():
    clock = FakeClock()
    tracker = QuotaTracker(ceiling=3, window=10.0, clock=clock)
    while tracker.try_admit():
        pass

    assert tracker.on_window_elapsed() is False

    clock.advance(10.0)
    assert tracker.on_window_elapsed() is True
    assert tracker.remaining == 3
    assert tracker.reset_at == pytest.approx(clock.now + 10.0)

    tracker.try_admit()
    assert tracker.on_window_elapsed() is False
    assert tracker.remaining == 2


def test_server_feedback_overwrites_state():
    tracker = QuotaTracker(ceiling=40, window=10.0, clock=FakeClock())

    assert tracker.on_server_feedback("12", "1700000000") is True
    assert tracker.remaining == 12
    assert tracker.reset_at == 1_700_000_000.0


def test_malformed_server_feedback_leaves_state_untouched():
    tracker = QuotaTracker(ceiling=40, window=10.0, clock=FakeClock())
    before = (tracker.remaining, tracker.reset_at)

    assert tracker.on_server_feedback("lots", "1700000000") is False
    assert tracker.on_server_feedback("5", "soon") is False
    assert tracker.on_server_feedback(None, None) is False
    assert (tracker.remaining, tracker.reset_at) == before


def test_rejection_sets_reset_when_none_known():
    clock = FakeClock()
    tracker = QuotaTracker(ceiling=40, window=10.0, clock=clock)
    tracker.state.reset_at = None

    tracker.on_rate_limit_rejection("5")

    assert tracker.reset_at == pytest.approx(clock.now + 5)
    assert tracker.remaining == 0


def test_rejection_uses_minimum_delay():
    clock = FakeClock()
    tracker = QuotaTracker(ceiling=40, window=10.0, clock=clock)
    tracker.state.reset_at = clock.now - 1

    tracker.on_rate_limit_rejection("0")

    assert tracker.reset_at == pytest.approx(clock.now + 0.5)


def test_rejection_never_shortens_authoritative_reset():
    clock = FakeClock()
    tracker = QuotaTracker(ceiling=40, window=10.0, clock=clock)
    tracker.on_server_feedback("0", str(int(clock.now) + 30))

    tracker.on_rate_limit_rejection("1")

    assert tracker.reset_at == clock.now + 30


def test_parse_retry_after_variants():
    assert parse_retry_after("3") == 3.0
    assert parse_retry_after(None) == 0.0
    assert parse_retry_after("garbage") == 0.0
    assert parse_retry_after("inf") == 0.0
    assert parse_retry_after("nan") == 0.0
    assert parse_retry_after("-inf") == 0.0
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT", now=1445412470.0) == pytest.approx(10.0)


def test_rejection_with_infinite_retry_after_uses_minimum_delay():
    clock = FakeClock()
    tracker = QuotaTracker(ceiling=40, window=10.0, clock=clock)
    tracker.state.reset_at = None

    tracker.on_rate_limit_rejection("inf")

    assert tracker.reset_at == clock.now + 0.5
    clock.advance(0.5)
    assert tracker.on_window_elapsed() is True
    assert tracker.remaining == 40
