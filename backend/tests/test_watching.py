"""
Integration tests against a real watchdog observer.

Requires Python 3.11+.
"""

import asyncio
import os
import shlex
import sys
import time
from pathlib import Path

import pytest

from conftest import read_output, wait_until
from orchestrator.target import TargetOrchestrator, WatchTarget
from runner.display import WriterDisplay
from utils.config import Settings, WatcherSettings
from utils.errors import WatchError
from watcher.events import ChangeEvent, ChangeOp
from watcher.subscription import ObserverSubscription, WatchSubscription, open_subscription


async def next_change(
    changes: "asyncio.Queue[ChangeEvent]",
    predicate,
    timeout: float = 5.0,
) -> ChangeEvent | None:
    """Drain ``changes`` until one satisfies ``predicate``."""
    deadline = time.monotonic() + timeout
    while (remaining := deadline - time.monotonic()) > 0:
        try:
            change = await asyncio.wait_for(changes.get(), timeout=remaining)
        except TimeoutError:
            return None
        if predicate(change):
            return change
    return None


class WatchHarness:
    """Starts watching a target and forwards its changes into ``changes``."""

    def __init__(self, target: WatchTarget, subscription: WatchSubscription | None = None) -> None:
        self.orchestrator = TargetOrchestrator(target, WriterDisplay(), settings=Settings())
        self.subscription = subscription or open_subscription()
        self.changes: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self.task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> "WatchHarness":
        event_filter = await self.orchestrator.start_watching(self.subscription)
        self.task = asyncio.create_task(event_filter.forward(self.changes))
        return self

    async def __aexit__(self, *args) -> None:
        if self.task is not None:
            self.task.cancel()
            await asyncio.gather(self.task, return_exceptions=True)
        self.subscription.stop()


class TestWatching:
    """End-to-end change detection."""

    @pytest.mark.asyncio
    async def test_initial_tree_registered(self, source_tree: Path):
        target = WatchTarget(root=str(source_tree), command="true", exclude=r"/build$")

        async with WatchHarness(target) as harness:
            watched = harness.subscription.watched

        assert str(source_tree) in watched
        assert str(source_tree / "src" / "util") in watched
        assert str(source_tree / "build") not in watched

    @pytest.mark.asyncio
    async def test_write_detected(self, source_tree: Path):
        target = WatchTarget(root=str(source_tree), command="true")
        path = str(source_tree / "src" / "lib.c")

        async with WatchHarness(target) as harness:
            with open(path, "a") as f:
                f.write("// touched\n")

            change = await next_change(harness.changes, lambda c: c.path == path)

        assert change is not None
        assert change.timestamp == pytest.approx(os.stat(path).st_mtime)

    @pytest.mark.asyncio
    async def test_new_subdirectory_is_watched(self, source_tree: Path):
        """A file created inside a freshly created directory is seen."""
        target = WatchTarget(root=str(source_tree), command="true")
        new_dir = source_tree / "src" / "fresh"
        new_file = new_dir / "added.c"

        async with WatchHarness(target) as harness:
            new_dir.mkdir()
            created = await next_change(harness.changes, lambda c: c.path == str(new_dir))
            assert created is not None
            assert str(new_dir) in harness.subscription.watched

            new_file.write_text("int added;\n")
            change = await next_change(harness.changes, lambda c: c.path == str(new_file))

        assert change is not None

    @pytest.mark.asyncio
    async def test_delete_resolves_to_parent_mtime(self, source_tree: Path):
        target = WatchTarget(root=str(source_tree), command="true")
        path = source_tree / "src" / "util" / "helpers.c"

        async with WatchHarness(target) as harness:
            path.unlink()
            change = await next_change(
                harness.changes,
                lambda c: c.path == str(path) and c.op is ChangeOp.REMOVE,
            )

        assert change is not None
        assert change.timestamp == os.stat(path.parent).st_mtime

    @pytest.mark.asyncio
    async def test_excluded_changes_never_forwarded(self, source_tree: Path):
        target = WatchTarget(root=str(source_tree), command="true", exclude=r"\.o$|/build")
        marker = source_tree / "main.c"

        async with WatchHarness(target) as harness:
            (source_tree / "build" / "out.o").write_bytes(b"rebuilt")
            (source_tree / "stray.o").write_bytes(b"stray")
            marker.write_text("int main() { return 1; }\n")

            seen: list[ChangeEvent] = []
            await next_change(
                harness.changes,
                lambda c: seen.append(c) or c.path == str(marker),
            )

        assert seen
        assert not any(target.matcher.matches(c.path) for c in seen)
        assert all("build" not in p for p in harness.subscription.watched)

    @pytest.mark.asyncio
    async def test_missing_root_is_fatal(self, tmp_path: Path):
        target = WatchTarget(root=str(tmp_path / "absent"), command="true")
        orchestrator = TargetOrchestrator(target, WriterDisplay(), settings=Settings())

        with pytest.raises(WatchError):
            await asyncio.wait_for(orchestrator.serve(), timeout=5.0)

    @pytest.mark.asyncio
    async def test_single_file_root(self, source_tree: Path):
        path = str(source_tree / "main.c")
        target = WatchTarget(root=path, command="true")

        async with WatchHarness(target) as harness:
            assert harness.subscription.watched == {path}

    @pytest.mark.asyncio
    async def test_large_tree_fully_watched(self, tmp_path: Path):
        """More directories than the per-user inotify instance limit all get watches."""
        root = tmp_path / "wide"
        subdirs = [root / f"d{i:03d}" for i in range(200)]
        for subdir in subdirs:
            subdir.mkdir(parents=True)
        target = WatchTarget(root=str(root), command="true")
        edited = root / "top.c"

        async with WatchHarness(target) as harness:
            watched = harness.subscription.watched
            edited.write_text("int top;\n")
            change = await next_change(harness.changes, lambda c: c.path == str(edited))

        assert watched == {str(root)} | {str(subdir) for subdir in subdirs}
        assert change is not None

    @pytest.mark.asyncio
    async def test_observer_subscription_detects_writes(self, source_tree: Path):
        target = WatchTarget(root=str(source_tree), command="true")
        path = str(source_tree / "main.c")

        async with WatchHarness(target, ObserverSubscription()) as harness:
            assert str(source_tree / "src" / "util") in harness.subscription.watched
            with open(path, "a") as f:
                f.write("// touched\n")
            change = await next_change(harness.changes, lambda c: c.path == path)

        assert change is not None


class TestServe:
    """The whole pipeline: watchdog events through to a real command."""

    @pytest.mark.asyncio
    async def test_edit_reruns_command_once(self, source_tree: Path, output_file):
        command = shlex.join([sys.executable, "-c", "print('bu' + 'ilt')"])
        settings = Settings(watcher=WatcherSettings(run_on_start=True, debounce_delay_ms=100))
        orchestrator = TargetOrchestrator(
            WatchTarget(root=str(source_tree), command=command),
            WriterDisplay(output_file),
            settings=settings,
        )

        task = asyncio.create_task(orchestrator.serve())
        try:
            # The startup run only begins once the tree is registered.
            assert await wait_until(lambda: orchestrator.run_count == 1)
            await asyncio.sleep(0.1)

            with open(source_tree / "src" / "lib.c", "a") as f:
                f.write("// edited\n")
            assert await wait_until(lambda: orchestrator.run_count == 2)
            await asyncio.sleep(0.5)
        finally:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        assert orchestrator.run_count == 2
        assert orchestrator.last_record.exit_status == 0
        assert read_output(output_file).count("built\n") == 2
