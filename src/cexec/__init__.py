"""Compile-and-run service package.

This package lets a remote client submit C source, have it compiled by a
native toolchain (gcc, tcc or clang) and run the resulting binary with
supplied standard input.  Each client works in its own session, backed by
a private workspace directory.

The service is **not** a secure sandbox.  Compiled programs run as plain
child processes with the server's privileges; the only limits are the
session's working directory, a wall-clock timeout and capped output.

The top-level modules include:

* ``config`` – configuration handling for environment variables.
* ``errors`` – the error taxonomy shared by every layer.
* ``models`` – Pydantic models defining request and response schemas.
* ``workspace`` – per-session scratch directories.
* ``sessions`` – the in-memory session store.
* ``executor`` – process runner, compiler invoker and program executor.
* ``service`` – session lifecycle orchestration.
* ``api`` – FastAPI application exposing HTTP endpoints.
"""
