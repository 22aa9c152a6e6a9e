"""
Rewatch Application.

Starts one independent orchestrator per watch target.
Requires Python 3.11+.
"""

import asyncio
from collections.abc import Sequence

from orchestrator.target import TargetOrchestrator, WatchTarget
from runner.capability import has_process_groups
from runner.display import Display, WriterDisplay
from utils.config import Settings, get_settings
from utils.logger import get_logger

logger = get_logger(__name__)


def build_orchestrators(
    targets: Sequence[WatchTarget],
    display: Display | None = None,
    settings: Settings | None = None,
) -> list[TargetOrchestrator]:
    """
    Create one orchestrator per target.

    The process group probe runs once here and its result is shared by
    every target.
    """
    settings = settings or get_settings()
    display = display or WriterDisplay()
    process_groups = has_process_groups()
    return [
        TargetOrchestrator(
            target,
            display,
            process_groups=process_groups,
            settings=settings,
        )
        for target in targets
    ]


async def run_targets(
    targets: Sequence[WatchTarget],
    display: Display | None = None,
    settings: Settings | None = None,
) -> None:
    """
    Serve every target until one of them fails.

    Targets share nothing but the display. A fatal error in any worker
    cancels the others and surfaces as an ExceptionGroup.
    """
    orchestrators = build_orchestrators(targets, display, settings)
    logger.info("starting_targets", count=len(orchestrators))
    async with asyncio.TaskGroup() as group:
        for orchestrator in orchestrators:
            group.create_task(
                orchestrator.serve(),
                name=f"target:{orchestrator.target.root}",
            )
