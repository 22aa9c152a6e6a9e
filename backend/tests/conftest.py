"""
Rewatch Test Configuration.

Pytest fixtures and shared helpers.
Requires Python 3.11+.
"""

import asyncio
import os
import time
from collections.abc import Callable, Generator
from pathlib import Path
from typing import TextIO

import pytest
import structlog

from runner.display import WriterDisplay
from utils.config import get_settings


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Isolate every test from the caller's environment."""
    for name in list(os.environ):
        if name.startswith(("WATCHER_", "RUNNER_", "LOG_")):
            monkeypatch.delenv(name)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """
    Create a small project tree.

    Layout:
        project/
            main.c
            src/lib.c
            src/util/helpers.c
            build/out.o
    """
    root = tmp_path / "project"
    (root / "src" / "util").mkdir(parents=True)
    (root / "build").mkdir()
    (root / "main.c").write_text("int main() { return 0; }\n")
    (root / "src" / "lib.c").write_text("int lib() { return 1; }\n")
    (root / "src" / "util" / "helpers.c").write_text("int help() { return 2; }\n")
    (root / "build" / "out.o").write_bytes(b"\x7fELF")
    return root


@pytest.fixture
def output_file(tmp_path: Path) -> Generator[TextIO, None, None]:
    """A real file children can write their output into."""
    with open(tmp_path / "output.log", "a+") as f:
        yield f


@pytest.fixture
def display(output_file: TextIO) -> WriterDisplay:
    return WriterDisplay(output_file)


def read_output(output_file: TextIO) -> str:
    output_file.flush()
    return Path(output_file.name).read_text()
