"""
Tests for the Debouncer.

Requires Python 3.11+.
"""

import pytest

from watcher.debouncer import Debouncer


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestDebouncer:
    """Test cases for Debouncer."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def debouncer(self, clock: FakeClock) -> Debouncer:
        return Debouncer(delay_ms=200, clock=clock)

    def test_nothing_pending_at_startup(self, debouncer: Debouncer):
        assert not debouncer.pending
        assert not debouncer.armed
        assert debouncer.timeout() is None

    def test_change_arms_timer(self, debouncer: Debouncer):
        debouncer.note_change(1000.0)

        assert debouncer.armed
        assert debouncer.timeout() == pytest.approx(0.2)
        assert not debouncer.expired()

    def test_each_change_restarts_timer(self, debouncer: Debouncer, clock: FakeClock):
        debouncer.note_change(1000.0)
        clock.advance(0.15)
        debouncer.note_change(1000.1)
        clock.advance(0.15)

        assert not debouncer.expired()
        assert debouncer.timeout() == pytest.approx(0.05)

        clock.advance(0.05)
        assert debouncer.expired()

    def test_burst_coalesces_into_one_run(self, debouncer: Debouncer, clock: FakeClock):
        for i in range(3):
            debouncer.note_change(1000.0 + i)
            clock.advance(0.05)
        clock.advance(0.2)

        assert debouncer.fire() is True
        debouncer.mark_run(2000.0)

        assert debouncer.fire() is False

    def test_fire_disarms(self, debouncer: Debouncer, clock: FakeClock):
        debouncer.note_change(1000.0)
        clock.advance(0.2)
        debouncer.fire()

        assert not debouncer.armed
        assert not debouncer.expired()

    def test_no_redundant_rerun(self, debouncer: Debouncer, clock: FakeClock):
        """A change older than the last run does not make a run due."""
        debouncer.mark_run(2000.0)
        debouncer.note_change(1999.0)
        clock.advance(0.2)

        assert debouncer.expired()
        assert debouncer.fire() is False

    def test_last_change_is_high_water_mark(self, debouncer: Debouncer):
        debouncer.note_change(1005.0)
        debouncer.note_change(1001.0)

        assert debouncer.last_change_time == 1005.0
