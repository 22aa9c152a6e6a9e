"""
Rewatch Watch Subscription.

Per-directory (non-recursive) registration with an asyncio queue of raw
watchdog events and an asyncio queue of fatal errors.

On Linux every target owns a single inotify instance carrying one watch
per directory; elsewhere directories are scheduled on a watchdog Observer.
Requires Python 3.11+.
"""

import asyncio
import os
import threading
from typing import Any

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch
from watchdog.utils import platform

from utils.errors import WatchError
from utils.logger import LoggerMixin

if platform.is_linux():
    from watchdog.observers.inotify_c import Inotify, InotifyEvent


class WatchSubscription(LoggerMixin):
    """
    The set of paths registered for one target.

    Paths are registered one at a time, never recursively; subtree walking
    is the caller's job. The set only grows: a directory that is deleted
    keeps its (now inert) entry until the same path is created again, at
    which point it is re-armed.

    Events arrive on a watcher thread and cross into the loop with
    call_soon_threadsafe. The events queue is unbounded: events pile up
    here while the consumer is blocked.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self.events: asyncio.Queue[FileSystemEvent] = asyncio.Queue()
        self.errors: asyncio.Queue[WatchError] = asyncio.Queue()
        self._watched: set[str] = set()
        self._running = False

    def _deliver(self, event: FileSystemEvent) -> None:
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.events.put_nowait, event)

    def _report_failure(self, exc: Exception) -> None:
        error = WatchError(f"watcher error: {exc}")
        error.__cause__ = exc
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.errors.put_nowait, error)

    def start(self) -> None:
        """Start delivering events. Registrations made afterwards are live immediately."""
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    def add(self, path: str) -> None:
        """
        Register a single directory (or file).

        Raises:
            FileNotFoundError: The path no longer exists
            OSError: The platform refused the watch
        """
        raise NotImplementedError

    @property
    def watched(self) -> set[str]:
        """Paths currently registered."""
        return set(self._watched)


def inotify_to_watchdog(raw: "InotifyEvent") -> FileSystemEvent | None:
    """
    Translate a raw inotify event into the matching watchdog event.

    Moves are not paired: the source half becomes a move with no
    destination and the destination half a creation, so a move out of or
    into the tree still reports its half.
    """
    src = os.fsdecode(raw.src_path)
    if raw.is_directory:
        created, deleted, moved = DirCreatedEvent, DirDeletedEvent, DirMovedEvent
    else:
        created, deleted, moved = FileCreatedEvent, FileDeletedEvent, FileMovedEvent

    if raw.is_create or raw.is_moved_to:
        return created(src)
    if raw.is_delete or raw.is_delete_self:
        return deleted(src)
    if raw.is_moved_from:
        return moved(src, "")
    if (raw.is_modify or raw.is_attrib) and not raw.is_directory:
        return FileModifiedEvent(src)
    return None


class InotifySubscription(WatchSubscription):
    """
    One inotify instance per target with a watch per registered path.

    The instance is opened by the first registration; a reader thread
    drains it for as long as the subscription runs.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__(loop)
        self._inotify: Inotify | None = None
        self._reader: threading.Thread | None = None
        self._lock = threading.Lock()
        self._stopping = threading.Event()

    def start(self) -> None:
        with self._lock:
            self._running = True
            self._start_reader()

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stopping.set()
            if self._inotify is not None:
                self._inotify.close()
        if self._reader is not None:
            self._reader.join(timeout=5.0)

    def add(self, path: str) -> None:
        os.stat(path)
        encoded = os.fsencode(path)
        with self._lock:
            if self._inotify is None:
                self._inotify = Inotify(encoded)
            else:
                # A known path again means it was recreated; the new inode
                # gets a fresh watch descriptor.
                self._inotify.add_watch(encoded)
            self._watched.add(path)
            self._start_reader()

    def _start_reader(self) -> None:
        if not self._running or self._inotify is None or self._reader is not None:
            return
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(self._inotify,),
            name="rewatch-inotify",
            daemon=True,
        )
        self._reader.start()

    def _read_loop(self, inotify: "Inotify") -> None:
        try:
            while not self._stopping.is_set():
                for raw in inotify.read_events():
                    event = inotify_to_watchdog(raw)
                    if event is not None:
                        self._deliver(event)
        except Exception as e:
            if not self._stopping.is_set():
                self._report_failure(e)


class QueueingHandler(FileSystemEventHandler):
    """Hands every watchdog event to the subscription."""

    def __init__(self, deliver: Any) -> None:
        super().__init__()
        self._deliver = deliver

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._deliver(event)


class ReportingObserver(Observer):  # type: ignore[misc,valid-type]
    """Observer that reports a crash of its dispatch thread instead of dying silently."""

    def __init__(self, report: Any, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._report = report

    def run(self) -> None:
        try:
            super().run()
        except Exception as e:
            self._report(e)


class ObserverSubscription(WatchSubscription):
    """Schedules each path on a watchdog Observer, for platforms without inotify."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__(loop)
        self._handler = QueueingHandler(self._deliver)
        self._observer = ReportingObserver(report=self._report_failure)
        self._watches: dict[str, ObservedWatch] = {}

    def start(self) -> None:
        if self._running:
            return
        self._observer.start()
        self._running = True

    def stop(self) -> None:
        if not self._running:
            return
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._running = False

    def add(self, path: str) -> None:
        os.stat(path)
        # The old watch died with the old directory.
        stale = self._watches.pop(path, None)
        if stale is not None:
            self._observer.unschedule(stale)

        self._watches[path] = self._observer.schedule(self._handler, path, recursive=False)
        self._watched.add(path)


def open_subscription(loop: asyncio.AbstractEventLoop | None = None) -> WatchSubscription:
    """Create the subscription flavour native to this platform."""
    if platform.is_linux():
        return InotifySubscription(loop)
    return ObserverSubscription(loop)
