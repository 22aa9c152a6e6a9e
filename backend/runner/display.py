"""
Rewatch Display Surface.

The display is where command output goes and, for interactive surfaces,
where manual rerun requests come from.
Requires Python 3.11+.
"""

import asyncio
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol, TextIO, TypeVar

T = TypeVar("T")


class Display(Protocol):
    """Output sink plus an optional source of "rerun now" signals."""

    async def redisplay(self, render: Callable[[TextIO], Awaitable[T]]) -> T:
        """Give ``render`` the output stream for one run and return its result."""
        ...

    def rerun(self) -> AsyncIterator[None]:
        """Yield once per manual rerun request. May never yield."""
        ...


class WriterDisplay:
    """
    Non-interactive display writing straight to a stream.

    It has no way to observe the user, so ``rerun()`` never yields.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    @property
    def stream(self) -> TextIO:
        return self._stream

    async def redisplay(self, render: Callable[[TextIO], Awaitable[T]]) -> T:
        return await render(self._stream)

    async def rerun(self) -> AsyncIterator[None]:
        await asyncio.get_running_loop().create_future()
        yield
