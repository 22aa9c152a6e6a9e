"""
Rewatch Target Orchestrator.

The per-target control loop: changes in, debounced runs out.
Requires Python 3.11+.
"""

import asyncio
import os
from collections.abc import AsyncIterator, Coroutine
from dataclasses import dataclass, field
from typing import Any

import structlog

from runner.display import Display
from runner.models import RunRecord
from runner.process_runner import ProcessRunner
from utils.config import Settings, get_settings
from utils.errors import WatchError
from utils.logger import LoggerMixin
from watcher.debouncer import Debouncer
from watcher.events import ChangeEvent, ChangeEventFilter
from watcher.exclude import ExcludeMatcher
from watcher.subscription import WatchSubscription, open_subscription
from watcher.tree import WatchTreeManager, is_dir


@dataclass(frozen=True)
class WatchTarget:
    """
    One watched location and the command it drives.

    The exclude pattern is compiled on construction, so a bad pattern
    fails here with ConfigurationError rather than at the first event.
    """

    root: str
    command: str
    exclude: str | None = None
    matcher: ExcludeMatcher = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "matcher", ExcludeMatcher(self.exclude))


async def _next_signal(signals: AsyncIterator[None]) -> bool:
    """Wait for the next rerun signal; False once the source is exhausted."""
    try:
        await anext(signals)
    except StopAsyncIteration:
        return False
    return True


class TargetOrchestrator(LoggerMixin):
    """
    Runs one target forever.

    A single loop waits on three sources: forwarded change events (which
    re-arm the debouncer), manual rerun signals from the display (which run
    immediately) and the debounce timer (which runs only if a change is
    newer than the last run). Runs are awaited inline, so they never
    overlap and no change is received while one is in progress.
    """

    def __init__(
        self,
        target: WatchTarget,
        display: Display,
        *,
        process_groups: bool = False,
        settings: Settings | None = None,
        runner: ProcessRunner | None = None,
        debouncer: Debouncer | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._target = target
        self._display = display
        self._run_on_start = settings.watcher.run_on_start
        self._runner = runner or ProcessRunner(
            target.command,
            process_groups=process_groups,
            poll_interval=settings.poll_interval,
        )
        self._debouncer = debouncer or Debouncer(delay_ms=settings.watcher.debounce_delay_ms)
        # Capacity one: the filter blocks here while a run is in progress.
        self.changes: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=1)
        self.last_record: RunRecord | None = None
        self.run_count = 0

    @property
    def target(self) -> WatchTarget:
        return self._target

    @property
    def runner(self) -> ProcessRunner:
        return self._runner

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    async def start_watching(self, subscription: WatchSubscription) -> ChangeEventFilter:
        """
        Register the target's root and build the filter for its events.

        The initial walk runs in a worker thread so a large tree does not
        stall the other targets sharing the loop.

        Raises:
            WatchError: The root does not exist or cannot be inspected
        """
        root = self._target.root
        tree = WatchTreeManager(subscription, self._target.matcher)
        try:
            if not os.path.exists(root):
                raise WatchError(f"failed to watch {root}: no such file or directory")
            root_is_dir = is_dir(root)
        except OSError as e:
            raise WatchError(f"failed to watch {root}: {e}") from e

        subscription.start()
        if root_is_dir:
            await asyncio.to_thread(tree.register_subtree, root)
        else:
            tree.register(root)
        self.log.info(
            "watching",
            root=root,
            directories=len(tree.watched),
            exclude=self._target.matcher.pattern,
            delay=self._debouncer.delay,
        )
        return ChangeEventFilter(subscription, tree, self._target.matcher)

    async def serve(self) -> None:
        """
        Watch the target and rerun its command until cancelled.

        Raises:
            WatchError: The root cannot be watched or the watcher failed
        """
        structlog.contextvars.bind_contextvars(target=self._target.root)
        subscription = open_subscription()
        try:
            event_filter = await self.start_watching(subscription)
            await self.run_loop(event_filter.forward(self.changes))
        finally:
            subscription.stop()

    async def run_loop(self, feed: Coroutine[Any, Any, None]) -> None:
        """
        The control loop, fed by ``feed`` which puts into ``self.changes``.

        Returns never; a failure in ``feed`` propagates.
        """
        feeder = asyncio.create_task(feed)
        signals = aiter(self._display.rerun())
        next_rerun: asyncio.Task[bool] | None = asyncio.create_task(_next_signal(signals))

        try:
            if self._run_on_start:
                await self._run("startup")

            while True:
                receive = asyncio.ensure_future(self.changes.get())
                waiters: set[asyncio.Future[Any]] = {receive, feeder}
                if next_rerun is not None:
                    waiters.add(next_rerun)
                try:
                    done, _ = await asyncio.wait(
                        waiters,
                        timeout=self._debouncer.timeout(),
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    receive.cancel()

                if feeder in done:
                    feeder.result()
                    raise WatchError("event stream ended")

                if receive in done:
                    change = receive.result()
                    self._debouncer.note_change(change.timestamp)

                if next_rerun is not None and next_rerun in done:
                    if next_rerun.result():
                        next_rerun = asyncio.create_task(_next_signal(signals))
                        await self._run("rerun")
                    else:
                        next_rerun = None

                if self._debouncer.expired() and self._debouncer.fire():
                    await self._run("change")
        finally:
            pending = [t for t in (feeder, next_rerun) if t is not None]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, reason: str) -> RunRecord:
        self.log.debug("run_triggered", reason=reason, command=self._target.command)
        record = await self._runner.run(self._display)
        self._debouncer.mark_run(record.finished_at or record.started_at)
        self.last_record = record
        self.run_count += 1
        return record
