"""
Process runner shared by the compiler invoker and the program executor.

This is the only module that touches OS process primitives.  A single
call to :meth:`ProcessRunner.run` spawns one child, feeds it standard
input, drains both output streams, enforces a wall-clock timeout and
returns a :class:`ProcessOutcome`.  The child (and anything it spawned
into its process group) is guaranteed to be dead or exited by the time
the call returns.

The runner does not sandbox anything.  There are no namespace, seccomp
or rlimit restrictions: a compiled program runs with the same privileges
as the server, confined only by its working directory and the timeout.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence, Union

from ..errors import ProcessLaunchError

logger = logging.getLogger("cexec.executor")

DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024
TRUNCATION_MARKER = b"\n[output truncated]"
# Grace period for reader threads once the child has been killed.
_DRAIN_GRACE_SECONDS = 1.0
_CHUNK_SIZE = 64 * 1024


@dataclass
class ProcessOutcome:
    """Result of a single subprocess invocation.

    Attributes
    ----------
    stdout: bytes
        Captured standard output, capped at the runner's byte limit.
    stderr: bytes
        Captured standard error, capped at the runner's byte limit.
    exit_code: int, optional
        Exit status when the process ended on its own.  ``None`` if it
        was terminated by a signal.
    terminating_signal: str, optional
        Name of the signal that ended the process (``"SIGKILL"`` after a
        timeout).  ``None`` for a normal exit.
    timed_out: bool
        ``True`` when the runner killed the process because it exceeded
        its wall-clock budget.  This includes the case where the process
        exited but its descendants kept the output pipes open; the
        outcome then reports ``SIGKILL`` and no exit code.
    duration_ms: int
        Wall-clock time from spawn to the end of output collection.
    """

    stdout: bytes
    stderr: bytes
    exit_code: Optional[int]
    terminating_signal: Optional[str]
    timed_out: bool
    duration_ms: int
    stdout_truncated: bool = False
    stderr_truncated: bool = False

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and self.exit_code == 0


class _StreamCollector(threading.Thread):
    """Drain one pipe into memory, keeping at most ``limit`` bytes."""

    def __init__(self, stream: BinaryIO, limit: int) -> None:
        super().__init__(daemon=True)
        self.stream = stream
        self.limit = limit
        self.chunks: List[bytes] = []
        self.size = 0
        self.truncated = False

    def run(self) -> None:
        try:
            while True:
                chunk = self.stream.read1(_CHUNK_SIZE)
                if not chunk:
                    break
                room = self.limit - self.size
                if room <= 0:
                    # Keep reading so the child never blocks on a full pipe.
                    self.truncated = True
                    continue
                if len(chunk) > room:
                    chunk = chunk[:room]
                    self.truncated = True
                self.chunks.append(chunk)
                self.size += len(chunk)
        except (OSError, ValueError):
            # Pipe closed underneath us while shutting down.
            pass
        finally:
            try:
                self.stream.close()
            except OSError:
                pass

    @property
    def data(self) -> bytes:
        data = b"".join(self.chunks)
        if self.truncated:
            data += TRUNCATION_MARKER
        return data


def _kill_process_group(process: subprocess.Popen) -> None:
    """Send SIGKILL to the child and everything in its process group."""
    if os.name != "posix":
        try:
            process.kill()
        except OSError:
            pass
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError:
        process.kill()


def _signal_name(returncode: int) -> str:
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


class ProcessRunner:
    """Spawn external executables with captured output and a hard timeout."""

    def __init__(self, max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES) -> None:
        self.max_output_bytes = max_output_bytes

    def run(
        self,
        command: Union[str, Path],
        args: Sequence[Union[str, Path]] = (),
        cwd: Optional[Union[str, Path]] = None,
        timeout_ms: int = 4000,
        stdin_bytes: Optional[bytes] = None,
    ) -> ProcessOutcome:
        """
        Run ``command`` with ``args`` and wait for it to finish.

        Parameters
        ----------
        command: str or Path
            Executable to launch.  Looked up on ``PATH`` when it has no
            directory component.
        args: sequence
            Arguments passed after the command.
        cwd: str or Path, optional
            Working directory for the child.
        timeout_ms: int
            Wall-clock budget.  When it elapses the whole process group
            is killed with SIGKILL and the outcome is marked ``timed_out``.
        stdin_bytes: bytes, optional
            Data written to the child's standard input, after which the
            pipe is closed so the child sees end-of-input.  When ``None``
            the child's stdin is ``/dev/null``.

        Raises
        ------
        ProcessLaunchError
            If the executable could not be started at all.
        """
        argv = [str(command), *(str(arg) for arg in args)]
        timeout = timeout_ms / 1000.0
        start_time = time.perf_counter()
        try:
            process = subprocess.Popen(
                argv,
                cwd=str(cwd) if cwd is not None else None,
                stdin=subprocess.PIPE if stdin_bytes is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=os.name == "posix",
            )
        except OSError as exc:
            raise ProcessLaunchError(f"Unable to launch {argv[0]}: {exc}") from exc

        lock = threading.Lock()
        finished = False
        timed_out = False

        def kill_on_timeout() -> None:
            nonlocal timed_out
            with lock:
                # Never signal a pid that has already been reaped.
                if finished or process.returncode is not None:
                    return
                timed_out = True
                _kill_process_group(process)

        stdout_reader = _StreamCollector(process.stdout, self.max_output_bytes)
        stderr_reader = _StreamCollector(process.stderr, self.max_output_bytes)
        stdout_reader.start()
        stderr_reader.start()

        timer = threading.Timer(timeout, kill_on_timeout)
        timer.daemon = True
        timer.start()

        try:
            if stdin_bytes is not None:
                try:
                    if stdin_bytes:
                        process.stdin.write(stdin_bytes)
                except BrokenPipeError:
                    # The child exited or closed stdin without reading everything.
                    pass
                finally:
                    try:
                        process.stdin.close()
                    except BrokenPipeError:
                        pass
            process.wait()
        finally:
            with lock:
                finished = True
                timer.cancel()
            if process.returncode is None:
                _kill_process_group(process)
                process.wait()

        deadline = start_time + timeout
        for reader in (stdout_reader, stderr_reader):
            reader.join(max(0.0, deadline - time.perf_counter()))
        killed_descendants = False
        if stdout_reader.is_alive() or stderr_reader.is_alive():
            # Descendants still hold the pipes open past the budget.
            logger.warning("Killing lingering descendants of %s (pid %s)", argv[0], process.pid)
            timed_out = True
            killed_descendants = True
            _kill_process_group(process)
            for reader in (stdout_reader, stderr_reader):
                reader.join(_DRAIN_GRACE_SECONDS)

        duration = int((time.perf_counter() - start_time) * 1000)
        returncode = process.returncode
        exit_code = returncode if returncode >= 0 else None
        terminating_signal = _signal_name(returncode) if returncode < 0 else None
        if killed_descendants:
            # The group was force-killed; the main process's own status is moot.
            exit_code = None
            terminating_signal = "SIGKILL"
        if timed_out:
            logger.info("%s timed out after %s ms", argv[0], timeout_ms)

        return ProcessOutcome(
            stdout=stdout_reader.data,
            stderr=stderr_reader.data,
            exit_code=exit_code,
            terminating_signal=terminating_signal,
            timed_out=timed_out,
            duration_ms=duration,
            stdout_truncated=stdout_reader.truncated,
            stderr_truncated=stderr_reader.truncated,
        )
