"""
Rewatch Change Event Filter.

Turns raw watchdog events into timestamped change events for the
orchestrator, extending the watch tree as directories appear.
Requires Python 3.11+.
"""

import asyncio
import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
)

from utils.errors import ResolutionError
from utils.logger import LoggerMixin
from watcher.exclude import ExcludeMatcher
from watcher.modtime import resolve_mod_time
from watcher.subscription import WatchSubscription
from watcher.tree import WatchTreeManager, is_dir


class ChangeOp(str, Enum):
    """Kind of filesystem operation behind a change."""

    CREATE = "create"
    WRITE = "write"
    REMOVE = "remove"
    RENAME = "rename"


@dataclass(frozen=True)
class ChangeEvent:
    """A filtered change with its resolved timestamp."""

    path: str
    op: ChangeOp
    timestamp: float


def raw_changes(event: FileSystemEvent) -> list[tuple[str, ChangeOp]]:
    """
    Map a watchdog event to (path, op) pairs.

    A move is reported as a rename of the source plus a creation of the
    destination; a move out of the watched tree has no destination.
    Directory-modified events only echo changes to their children and
    open/close notifications carry no change, so both map to nothing.
    """
    src = os.fsdecode(event.src_path)
    kind = event.event_type
    if kind == EVENT_TYPE_CREATED:
        return [(src, ChangeOp.CREATE)]
    if kind == EVENT_TYPE_MODIFIED and not event.is_directory:
        return [(src, ChangeOp.WRITE)]
    if kind == EVENT_TYPE_DELETED:
        return [(src, ChangeOp.REMOVE)]
    if kind == EVENT_TYPE_MOVED:
        changes = [(src, ChangeOp.RENAME)]
        dest = os.fsdecode(event.dest_path)
        if dest:
            changes.append((dest, ChangeOp.CREATE))
        return changes
    return []


class ChangeEventFilter(LoggerMixin):
    """
    Filters a target's raw event stream.

    Excluded paths are dropped before anything else happens to them. Every
    accepted event is timestamped; a new directory is registered before
    its event is forwarded so files created inside it are seen.
    """

    def __init__(
        self,
        subscription: WatchSubscription,
        tree: WatchTreeManager,
        exclude: ExcludeMatcher,
        resolve: Callable[[str], float] = resolve_mod_time,
    ) -> None:
        self._subscription = subscription
        self._tree = tree
        self._exclude = exclude
        self._resolve = resolve

    def accept(self, path: str, op: ChangeOp) -> ChangeEvent | None:
        """
        Apply exclusion, timestamp resolution and tree extension to one change.

        Returns:
            The change event to forward, or None if it was dropped
        """
        if self._exclude.matches(path):
            self.log.debug("ignoring_excluded_event", path=path, op=op.value)
            return None

        try:
            timestamp = self._resolve(path)
        except (ResolutionError, OSError) as e:
            self.log.warning("event_time_failed", path=path, error=str(e))
            return None

        self.log.debug("change_detected", path=path, op=op.value, timestamp=timestamp)

        if op is ChangeOp.CREATE:
            try:
                created_dir = is_dir(path)
            except OSError as e:
                self.log.warning("is_dir_check_failed", path=path, error=str(e))
                return None
            if created_dir:
                self._tree.register(path)

        return ChangeEvent(path=path, op=op, timestamp=timestamp)

    async def forward(self, changes: "asyncio.Queue[ChangeEvent]") -> None:
        """
        Forward accepted changes into ``changes`` forever.

        The put blocks while the consumer is busy, so undelivered raw events
        stay queued in the subscription.

        Raises:
            WatchError: The subscription reported a failure
        """
        while True:
            next_event = asyncio.ensure_future(self._subscription.events.get())
            next_error = asyncio.ensure_future(self._subscription.errors.get())
            try:
                done, _ = await asyncio.wait(
                    {next_event, next_error},
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                next_event.cancel()
                next_error.cancel()

            if next_error in done:
                error = next_error.result()
                self.log.error("watcher_error", error=str(error))
                raise error

            for path, op in raw_changes(next_event.result()):
                change = self.accept(path, op)
                if change is not None:
                    await changes.put(change)
