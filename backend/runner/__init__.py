"""
Rewatch Runner Package.

Child process lifecycle and the display surface commands write to.
Requires Python 3.11+.
"""

from runner.capability import has_process_groups
from runner.display import Display, WriterDisplay
from runner.models import KillRequest, RunRecord, RunState
from runner.process_runner import ProcessRunner

__all__ = [
    "Display",
    "KillRequest",
    "ProcessRunner",
    "RunRecord",
    "RunState",
    "WriterDisplay",
    "has_process_groups",
]
