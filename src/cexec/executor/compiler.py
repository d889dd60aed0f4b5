"""
Compiler invoker for C source submissions.

The invoker picks the first available toolchain from an ordered list of
:class:`Toolchain` descriptors, writes the submitted source to
``main.c`` inside the session workspace and compiles it to ``a.out``.
Each session has exactly one source file and one binary; a new
compilation overwrites both.

Adding a toolchain only requires a new entry in :data:`TOOLCHAINS`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import CompilationFailed, NoToolchainAvailable, ProcessLaunchError, StorageError, Timeout
from .base import ProcessRunner

logger = logging.getLogger("cexec.compiler")

SOURCE_FILENAME = "main.c"
BINARY_FILENAME = "a.out"


@dataclass(frozen=True)
class Toolchain:
    """Description of one external C compiler."""

    name: str
    command: str
    flags: Tuple[str, ...] = ()
    probe_args: Tuple[str, ...] = ("-v",)

    def build_args(self, source: Path, output: Path) -> List[str]:
        return [str(source), *self.flags, "-o", str(output)]


# Warnings suppressed, no optimisation.
TOOLCHAINS: Dict[str, Toolchain] = {
    "gcc": Toolchain("gcc", "gcc", flags=("-w", "-O0")),
    "clang": Toolchain("clang", "clang", flags=("-w", "-O0")),
    "tcc": Toolchain("tcc", "tcc"),
}


@dataclass
class CompileResult:
    """Outcome of compiling one submission."""

    succeeded: bool
    stdout: str
    stderr: str
    failure: Optional[str] = None
    toolchain: Optional[str] = None
    binary_path: Optional[Path] = None

    @property
    def diagnostics(self) -> str:
        return self.stderr or self.stdout

    @property
    def message(self) -> str:
        if self.succeeded:
            return "Compilation successful."
        return f"Compilation error:\n{self.diagnostics}"


class CompilerInvoker:
    """Detect a toolchain and compile source text inside a workspace."""

    def __init__(
        self,
        runner: ProcessRunner,
        toolchains: Sequence[Toolchain],
        compile_timeout_ms: int = 8000,
        probe_timeout_ms: int = 1500,
    ) -> None:
        self.runner = runner
        self.toolchains = list(toolchains)
        self.compile_timeout_ms = compile_timeout_ms
        self.probe_timeout_ms = probe_timeout_ms

    @classmethod
    def from_names(cls, runner: ProcessRunner, names: Sequence[str], **kwargs) -> "CompilerInvoker":
        return cls(runner, [TOOLCHAINS[name] for name in names], **kwargs)

    def is_available(self, toolchain: Toolchain) -> bool:
        """Probe ``toolchain`` with a cheap diagnostic invocation.

        Anything short of a launch failure that produces a recognisable
        response counts: exit status 0 or 1, or any output at all.
        """
        try:
            outcome = self.runner.run(
                toolchain.command, toolchain.probe_args, timeout_ms=self.probe_timeout_ms
            )
        except ProcessLaunchError:
            return False
        return outcome.exit_code in (0, 1) or bool(outcome.stdout) or bool(outcome.stderr)

    def detect_toolchain(self) -> Optional[Toolchain]:
        for toolchain in self.toolchains:
            if self.is_available(toolchain):
                return toolchain
            logger.debug("Toolchain %s not available", toolchain.name)
        return None

    def no_toolchain_result(self) -> CompileResult:
        logger.warning("No toolchain available among %s", [t.name for t in self.toolchains])
        return CompileResult(
            succeeded=False,
            stdout="",
            stderr=NoToolchainAvailable.default_message,
            failure=NoToolchainAvailable.kind,
        )

    def compile(
        self, source_text: str, workspace_dir: Path, toolchain: Optional[Toolchain] = None
    ) -> CompileResult:
        """Compile ``source_text`` into ``workspace_dir``.

        ``toolchain`` skips detection when the caller has already probed.
        Nothing is written to the workspace unless a toolchain is found.
        """
        if toolchain is None:
            toolchain = self.detect_toolchain()
        if toolchain is None:
            return self.no_toolchain_result()

        workspace_dir = Path(workspace_dir)
        source_path = workspace_dir / SOURCE_FILENAME
        binary_path = workspace_dir / BINARY_FILENAME
        try:
            # Lone surrogates from JSON input cannot be encoded; replace them.
            source_path.write_bytes(source_text.encode("utf-8", errors="replace"))
        except OSError as exc:
            raise StorageError(f"Unable to write source file: {exc}") from exc

        try:
            outcome = self.runner.run(
                toolchain.command,
                toolchain.build_args(source_path, binary_path),
                cwd=workspace_dir,
                timeout_ms=self.compile_timeout_ms,
            )
        except ProcessLaunchError as exc:
            logger.warning("Toolchain %s vanished after probing: %s", toolchain.name, exc)
            return CompileResult(
                succeeded=False,
                stdout="",
                stderr=NoToolchainAvailable.default_message,
                failure=NoToolchainAvailable.kind,
                toolchain=toolchain.name,
            )

        stdout = outcome.stdout_text
        stderr = outcome.stderr_text
        if outcome.timed_out:
            return CompileResult(
                succeeded=False,
                stdout=stdout,
                stderr=f"{stderr}\nCompilation timed out.".strip(),
                failure=Timeout.kind,
                toolchain=toolchain.name,
            )
        if outcome.exit_code != 0:
            return CompileResult(
                succeeded=False,
                stdout=stdout,
                stderr=stderr,
                failure=CompilationFailed.kind,
                toolchain=toolchain.name,
            )
        if not binary_path.is_file():
            return CompileResult(
                succeeded=False,
                stdout=stdout,
                stderr=f"{toolchain.name} exited successfully but produced no binary.",
                failure=CompilationFailed.kind,
                toolchain=toolchain.name,
            )
        return CompileResult(
            succeeded=True,
            stdout=stdout,
            stderr="",
            toolchain=toolchain.name,
            binary_path=binary_path,
        )
