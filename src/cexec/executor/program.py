"""
Executor for compiled programs.

Runs the binary produced by a previous successful compilation with the
session workspace as its working directory.  Standard input is always
written and then closed, so a program reading until end-of-input
terminates instead of waiting on an open pipe.

Standard output and standard error are captured independently and
reported stdout first, then stderr.  Their relative interleaving is not
preserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import ExecutionFailed, NoArtifact, ProcessLaunchError, Timeout
from .base import ProcessRunner


@dataclass
class RunResult:
    """Outcome of running a compiled program."""

    succeeded: bool
    output: str
    timed_out: bool = False
    failure: Optional[str] = None
    exit_code: Optional[int] = None
    terminating_signal: Optional[str] = None


class ProgramExecutor:
    """Run a session's compiled binary with a short, interactive timeout."""

    def __init__(self, runner: ProcessRunner, timeout_ms: int = 4000) -> None:
        self.runner = runner
        self.timeout_ms = timeout_ms

    def execute(self, binary_path: Path, workspace_dir: Path, stdin_text: str = "") -> RunResult:
        binary = Path(binary_path)
        if not binary.is_file():
            raise NoArtifact()

        try:
            outcome = self.runner.run(
                binary.resolve(),
                cwd=workspace_dir,
                timeout_ms=self.timeout_ms,
                stdin_bytes=(stdin_text or "").encode("utf-8", errors="replace"),
            )
        except ProcessLaunchError as exc:
            return RunResult(succeeded=False, output=exc.message, failure=ExecutionFailed.kind)

        stdout = outcome.stdout_text
        stderr = outcome.stderr_text
        if outcome.timed_out:
            return RunResult(
                succeeded=False,
                output=f"{stdout}{stderr}\n{Timeout.default_message}".strip(),
                timed_out=True,
                failure=Timeout.kind,
                exit_code=outcome.exit_code,
                terminating_signal=outcome.terminating_signal,
            )
        if outcome.exit_code != 0 and not stdout and not stderr:
            return RunResult(
                succeeded=False,
                output=ExecutionFailed.default_message,
                failure=ExecutionFailed.kind,
                exit_code=outcome.exit_code,
                terminating_signal=outcome.terminating_signal,
            )
        return RunResult(
            succeeded=True,
            output=f"{stdout}{stderr}",
            exit_code=outcome.exit_code,
            terminating_signal=outcome.terminating_signal,
        )
