"""
Rewatch Debouncer.

Coalesces bursts of change timestamps into a single rerun decision.
Requires Python 3.11+.
"""

import time
from collections.abc import Callable

from utils.logger import LoggerMixin


class Debouncer(LoggerMixin):
    """
    A single quiescence timer plus the last-change/last-run bookkeeping.

    Every change re-arms the timer, so a continuous burst never fires until
    it has been quiet for the full delay. When the timer fires a run is due
    only if the newest change is newer than the last completed run; at most
    one run is ever owed no matter how many changes arrived.

    The debouncer does no scheduling itself: the owning loop asks for
    ``timeout()`` and calls ``fire()`` once ``expired()``.
    """

    def __init__(
        self,
        delay_ms: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the debouncer.

        Args:
            delay_ms: Quiescence delay in milliseconds
            clock: Monotonic clock driving the timer
        """
        self._delay = delay_ms / 1000.0
        self._clock = clock
        self._deadline: float | None = None
        self.last_change_time = 0.0
        self.last_run_time = 0.0

    @property
    def delay(self) -> float:
        return self._delay

    def note_change(self, timestamp: float) -> None:
        """Record a change and restart the quiescence timer."""
        if timestamp > self.last_change_time:
            self.last_change_time = timestamp
        self._deadline = self._clock() + self._delay

    def timeout(self) -> float | None:
        """Seconds until the timer fires, or None when it is not armed."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def fire(self) -> bool:
        """
        Disarm the timer and report whether a run is owed.

        Returns:
            True if the newest change postdates the last run
        """
        self._deadline = None
        due = self.pending
        self.log.debug(
            "debounce_timer_fired",
            due=due,
            last_change=self.last_change_time,
            last_run=self.last_run_time,
        )
        return due

    def mark_run(self, finished_at: float) -> None:
        """Record the completion time of a run."""
        self.last_run_time = finished_at

    @property
    def pending(self) -> bool:
        return self.last_run_time < self.last_change_time

    @property
    def armed(self) -> bool:
        return self._deadline is not None
