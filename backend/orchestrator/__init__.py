"""
Rewatch Orchestrator Package.

Per-target control loops and the application that runs them.
Requires Python 3.11+.
"""

from orchestrator.app import build_orchestrators, run_targets
from orchestrator.target import TargetOrchestrator, WatchTarget

__all__ = [
    "TargetOrchestrator",
    "WatchTarget",
    "build_orchestrators",
    "run_targets",
]
