"""
Rewatch Process Group Capability.

Requires Python 3.11+.
"""

import inspect
import os
import subprocess
from functools import lru_cache

from utils.logger import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def has_process_groups() -> bool:
    """
    Probe once whether children can be made process group leaders.

    The check is structural: ``subprocess.Popen`` must accept a
    ``process_group`` argument and ``os`` must be able to signal a whole
    group. Platforms that lack either get signals sent to the child pid.
    """
    try:
        params = inspect.signature(subprocess.Popen).parameters
    except (TypeError, ValueError):
        params = {}
    accepts_group = "process_group" in params
    can_signal_group = hasattr(os, "killpg")
    supported = accepts_group and can_signal_group
    logger.debug(
        "process_group_probe",
        popen_process_group=accepts_group,
        killpg=can_signal_group,
        supported=supported,
    )
    return supported
