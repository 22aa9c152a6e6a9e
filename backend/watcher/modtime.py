"""
Rewatch Modification Time Resolver.

Best-effort timestamps for changed paths, including deleted ones.
Requires Python 3.11+.
"""

import os

from utils.errors import ResolutionError


def resolve_mod_time(path: str) -> float:
    """
    Return the modification time of ``path``.

    A path that no longer exists (a delete or rename event) resolves to the
    modification time of its nearest existing ancestor, which approximates
    when that location last changed.

    Args:
        path: Path named by a filesystem event

    Returns:
        Modification time in seconds since the epoch

    Raises:
        ResolutionError: No existing ancestor up to the filesystem root
        OSError: Stat failed for a reason other than the path being missing
    """
    current = path
    while True:
        try:
            return os.stat(current).st_mtime
        except FileNotFoundError:
            parent = os.path.dirname(current)
            if parent == current or not parent:
                raise ResolutionError(f"failed to find directory for {path}") from None
            current = parent
