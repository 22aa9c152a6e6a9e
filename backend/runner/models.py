"""
Rewatch Runner Data Models.

Requires Python 3.11+.
"""

from dataclasses import dataclass, field
from enum import Enum


class RunState(str, Enum):
    """Lifecycle states of a single command execution."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    START_FAILED = "start_failed"
    KILLED = "killed"


@dataclass(slots=True)
class RunRecord:
    """Outcome of one command invocation. Superseded by the next run."""

    command: str
    started_at: float
    state: RunState = RunState.STARTING
    finished_at: float | None = None
    exit_status: int | None = None
    error: str | None = None
    pid: int | None = None
    signals_sent: list[int] = field(default_factory=list)

    @property
    def killed(self) -> bool:
        return self.state is RunState.KILLED

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.COMPLETED and self.exit_status == 0

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at


@dataclass(frozen=True, slots=True)
class KillRequest:
    """Request to terminate whichever run is active when it is consumed."""

    issued_at: float
