"""
Rewatch File Watcher Package.

File system monitoring, exclusion and debouncing for watch targets.
Requires Python 3.11+.
"""

from watcher.debouncer import Debouncer
from watcher.events import ChangeEvent, ChangeEventFilter, ChangeOp
from watcher.exclude import ExcludeMatcher
from watcher.modtime import resolve_mod_time
from watcher.subscription import WatchSubscription, open_subscription
from watcher.tree import WatchTreeManager

__all__ = [
    "ChangeEvent",
    "ChangeEventFilter",
    "ChangeOp",
    "Debouncer",
    "ExcludeMatcher",
    "WatchSubscription",
    "WatchTreeManager",
    "open_subscription",
    "resolve_mod_time",
]
