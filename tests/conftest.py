"""
Shared fixtures for the compile-and-run tests.

Most tests use a fake toolchain whose "compiler" is the Python
interpreter: the submitted source is a Python script that writes the
output binary (itself a Python script with a shebang) to the path given
after ``-o``.  This exercises the real process runner and workspace
handling without needing a C compiler.  Tests that do need one are
skipped when ``gcc`` is not installed.
"""

from __future__ import annotations

import os
import shutil
import sys
import time
from pathlib import Path

import pytest

from cexec.executor import CompilerInvoker, ProcessRunner, ProgramExecutor, Toolchain
from cexec.service import SessionManager
from cexec.sessions import SessionStore
from cexec.workspace import WorkspaceManager

requires_posix = pytest.mark.skipif(os.name != "posix", reason="needs POSIX process groups and shebangs")
requires_gcc = pytest.mark.skipif(shutil.which("gcc") is None, reason="gcc not installed")

FAKE_TOOLCHAIN = Toolchain("fakecc", sys.executable, probe_args=("--version",))
MISSING_TOOLCHAIN = Toolchain("missingcc", "/nonexistent/bin/missing-cc")


def fake_source(program: str) -> str:
    """Source for the fake toolchain that "compiles" into ``program``."""
    script = f"#!{sys.executable}\n{program}\n"
    return (
        "import os, sys\n"
        "with open(sys.argv[2], 'w') as f:\n"
        f"    f.write({script!r})\n"
        "os.chmod(sys.argv[2], 0o755)\n"
    )


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    return tmp_path / "workspaces"


@pytest.fixture
def make_manager(workspace_root):
    """Factory for a SessionManager wired to the fake toolchain."""
    created = []

    def factory(
        toolchains=(FAKE_TOOLCHAIN,),
        compile_timeout_ms: int = 5000,
        run_timeout_ms: int = 2000,
        max_output_bytes: int = 64 * 1024,
        clock=time.monotonic,
        **kwargs,
    ) -> SessionManager:
        runner = ProcessRunner(max_output_bytes=max_output_bytes)
        manager = SessionManager(
            store=SessionStore(WorkspaceManager(workspace_root), clock=clock),
            compiler=CompilerInvoker(
                runner, list(toolchains), compile_timeout_ms=compile_timeout_ms, probe_timeout_ms=2000
            ),
            executor=ProgramExecutor(runner, timeout_ms=run_timeout_ms),
            **kwargs,
        )
        created.append(manager)
        return manager

    yield factory
    for manager in created:
        manager.store.close()
