"""Error taxonomy for the compile-and-run service.

Every failure the core can report derives from :class:`CodeExecError`.
Some of them are raised and mapped to an HTTP response by the API layer
(``UnknownSession``, ``NoArtifact``, ``StorageError`` and the request
validation errors); the rest are only ever reported through the
``failure`` field of a compile or run result, using the class ``kind``
as the tag, and never define a ``status_code`` of their own.
"""

from __future__ import annotations


class CodeExecError(Exception):
    """Base class for all service errors."""

    kind = "error"
    status_code = 500
    default_message = "Internal error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class UnknownSession(CodeExecError):
    kind = "unknown_session"
    status_code = 400
    default_message = "Invalid sessionId"


class NoToolchainAvailable(CodeExecError):
    kind = "no_toolchain"
    default_message = (
        "No C compiler found. Please install GCC (or TinyCC/clang) and ensure it is on PATH."
    )


class CompilationFailed(CodeExecError):
    kind = "compilation_failed"
    default_message = "Compilation failed."


class NoArtifact(CodeExecError):
    kind = "no_artifact"
    status_code = 400
    default_message = "No compiled program found for this session."


class Timeout(CodeExecError):
    kind = "timeout"
    default_message = "Execution timed out."


class ExecutionFailed(CodeExecError):
    kind = "execution_failed"
    default_message = "Program exited with non-zero status."


class StorageError(CodeExecError):
    kind = "storage_error"
    status_code = 500
    default_message = "Unable to allocate session workspace."


class ProcessLaunchError(CodeExecError):
    """The executable could not be started at all (missing, not executable)."""

    kind = "launch_failed"
    status_code = 500
    default_message = "Unable to launch process."


class InvalidRequest(CodeExecError):
    kind = "invalid_request"
    status_code = 400
    default_message = "Missing code"


class SourceTooLarge(CodeExecError):
    kind = "source_too_large"
    status_code = 413
    default_message = "Source code is too large."
