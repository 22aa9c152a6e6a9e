"""
Rewatch Process Runner.

Runs one target's command: launch, exit polling and escalating
termination on request.
Requires Python 3.11+.
"""

import asyncio
import codecs
import io
import os
import shlex
import signal
import subprocess
import time
from datetime import datetime
from typing import Any, TextIO

from runner.display import Display
from runner.models import KillRequest, RunRecord, RunState
from utils.logger import LoggerMixin


def _sink_fd(out: TextIO) -> int | None:
    """File descriptor a child can write to directly, or None if output must be copied."""
    try:
        return out.fileno()
    except (AttributeError, io.UnsupportedOperation):
        return None


def describe_exit(status: int) -> str:
    """Human readable exit status; negative values are signal numbers."""
    if status < 0:
        try:
            name = signal.Signals(-status).name
        except ValueError:
            name = f"signal {-status}"
        return f"terminated by {name}"
    return f"exit status {status}"


class OutputPump:
    """
    Copies a child's output pipe into a text stream.

    The pipe is read from the event loop whenever it becomes readable, so
    a chatty child never blocks on a full pipe while the wait loop polls.
    """

    def __init__(self, pipe: io.BufferedReader, out: TextIO) -> None:
        self._pipe = pipe
        self._fd = pipe.fileno()
        self._out = out
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._loop = asyncio.get_running_loop()
        self._open = True
        os.set_blocking(self._fd, False)
        self._loop.add_reader(self._fd, self._copy)

    def _copy(self) -> None:
        if self._read_chunk() is None:
            self._loop.remove_reader(self._fd)

    def _read_chunk(self) -> int | None:
        """Copy one readable chunk. Returns its size, 0 if nothing is ready, None at end of file."""
        try:
            data = os.read(self._fd, 65536)
        except BlockingIOError:
            return 0
        if not data:
            return None
        self._out.write(self._decoder.decode(data))
        self._out.flush()
        return len(data)

    def drain(self) -> None:
        """
        Copy whatever the child left in the pipe and close it.

        Called once the child has been reaped; output still held by
        background descendants is not waited for.
        """
        if not self._open:
            return
        self._open = False
        self._loop.remove_reader(self._fd)
        try:
            while self._read_chunk():
                pass
            tail = self._decoder.decode(b"", final=True)
            if tail:
                self._out.write(tail)
                self._out.flush()
        finally:
            self._pipe.close()


class ProcessRunner(LoggerMixin):
    """
    Owns the execution of one command string.

    Runs are strictly one at a time. While a run is active its wait loop
    polls the child every ``poll_interval`` seconds and listens for kill
    requests. The first kill request issued at or after the run's start
    sends SIGTERM, any later one SIGKILL; requests older than the run are
    stale and ignored.

    When ``process_groups`` is set the child leads its own process group
    and signals reach everything it spawned.
    """

    def __init__(
        self,
        command: str,
        process_groups: bool = False,
        poll_interval: float = 0.005,
    ) -> None:
        """
        Initialize the runner.

        Args:
            command: Command line, split with shell quoting rules
            process_groups: Isolate each child in its own process group
            poll_interval: Seconds between exit status polls
        """
        self._command = command
        self._process_groups = process_groups
        self._poll_interval = poll_interval
        self._kill_requests: asyncio.Queue[KillRequest] = asyncio.Queue(maxsize=1)
        self.state = RunState.IDLE
        self.last_record: RunRecord | None = None

    @property
    def command(self) -> str:
        return self._command

    async def run(self, display: Display) -> RunRecord:
        """
        Execute the command once with its output on ``display``.

        A command that cannot be started is reported on the display and
        recorded as START_FAILED; it is not raised.

        Raises:
            ChildProcessError: The child could not be reaped
        """
        return await display.redisplay(self._execute)

    async def kill(self, request_time: float | None = None) -> None:
        """
        Ask the active run to terminate.

        Only one request can be pending; a second call waits until the
        first has been consumed by the wait loop.
        """
        request = KillRequest(issued_at=time.time() if request_time is None else request_time)
        await self._kill_requests.put(request)
        self.log.debug("kill_requested", issued_at=request.issued_at)

    async def _execute(self, out: TextIO) -> RunRecord:
        self.state = RunState.STARTING
        record = RunRecord(command=self._command, started_at=time.time())
        self.last_record = record

        out.write(f"{self._command}\n")
        out.flush()

        try:
            proc = self._launch(out)
        except (OSError, ValueError) as e:
            record.state = RunState.START_FAILED
            record.error = str(e)
            record.finished_at = time.time()
            self.state = RunState.IDLE
            out.write(f"fatal: {e}\n")
            out.flush()
            self.log.warning("command_start_failed", command=self._command, error=str(e))
            return record

        self.state = RunState.RUNNING
        record.state = RunState.RUNNING
        record.pid = proc.pid
        self.log.info("command_started", command=self._command, pid=proc.pid)
        pump = OutputPump(proc.stdout, out) if proc.stdout is not None else None

        try:
            record.exit_status = await self._wait(proc, record)
        finally:
            if proc.returncode is None:
                self._send(proc, signal.SIGKILL)
                proc.wait()
            if pump is not None:
                pump.drain()
            self.state = RunState.IDLE

        record.finished_at = time.time()
        record.state = RunState.KILLED if record.signals_sent else RunState.COMPLETED

        if record.exit_status != 0:
            out.write(describe_exit(record.exit_status) + "\n")
        out.write(f"{datetime.now().isoformat(sep=' ', timespec='milliseconds')}\n")
        out.flush()

        self.log.info(
            "command_finished",
            command=self._command,
            exit_status=record.exit_status,
            state=record.state.value,
            duration=round(record.duration or 0.0, 3),
        )
        return record

    def _launch(self, out: TextIO) -> subprocess.Popen[Any]:
        argv = shlex.split(self._command)
        if not argv:
            raise ValueError("empty command")

        kwargs: dict[str, Any] = {}
        if self._process_groups:
            kwargs["process_group"] = 0

        # Streams without a descriptor get a pipe copied by OutputPump.
        fd = _sink_fd(out)
        return subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE if fd is None else fd,
            stderr=subprocess.STDOUT if fd is None else fd,
            env=os.environ.copy(),
            **kwargs,
        )

    async def _wait(self, proc: subprocess.Popen[Any], record: RunRecord) -> int:
        """Poll for exit while serving kill requests. Returns the exit status."""
        while True:
            status = self._reap(proc)
            if status is not None:
                return status

            try:
                async with asyncio.timeout(self._poll_interval):
                    request = await self._kill_requests.get()
            except TimeoutError:
                continue

            if request.issued_at < record.started_at:
                self.log.debug(
                    "stale_kill_request",
                    issued_at=request.issued_at,
                    started_at=record.started_at,
                )
                continue

            status = self._reap(proc)
            if status is not None:
                return status

            sig = signal.SIGTERM if not record.signals_sent else signal.SIGKILL
            self.log.debug("sending_signal", signal=sig.name, pid=proc.pid)
            self._send(proc, sig)
            record.signals_sent.append(int(sig))

    def _reap(self, proc: subprocess.Popen[Any]) -> int | None:
        """
        Non-blocking reap of the child.

        Errors from the wait primitive mean someone else reaped our child;
        that is a broken invariant and is left to propagate.
        """
        pid, status, _ = os.wait4(proc.pid, os.WNOHANG)
        if pid == 0:
            return None
        code = os.waitstatus_to_exitcode(status)
        # Popen must not try to reap the pid again
        proc.returncode = code
        return code

    def _send(self, proc: subprocess.Popen[Any], sig: signal.Signals) -> None:
        try:
            if self._process_groups:
                os.killpg(proc.pid, sig)
            else:
                os.kill(proc.pid, sig)
        except ProcessLookupError:
            self.log.debug("process_already_exited", pid=proc.pid, signal=sig.name)
