"""
Process execution backends for the compile-and-run service.

``base`` holds the :class:`ProcessRunner`, the single place where child
processes are spawned, timed out and reaped.  On top of it sit the
:class:`CompilerInvoker`, which turns C source into a binary using the
first available toolchain, and the :class:`ProgramExecutor`, which runs
that binary with the caller's standard input.  Additional toolchains can
be added by registering a :class:`Toolchain` in ``compiler.TOOLCHAINS``.
"""

from .base import ProcessOutcome, ProcessRunner
from .compiler import BINARY_FILENAME, SOURCE_FILENAME, TOOLCHAINS, CompileResult, CompilerInvoker, Toolchain
from .program import ProgramExecutor, RunResult

__all__ = [
    "BINARY_FILENAME",
    "SOURCE_FILENAME",
    "TOOLCHAINS",
    "CompileResult",
    "CompilerInvoker",
    "ProcessOutcome",
    "ProcessRunner",
    "ProgramExecutor",
    "RunResult",
    "Toolchain",
]
