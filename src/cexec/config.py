"""Configuration loader.

The compile-and-run service reads its configuration from environment
variables so the same code can run on a developer laptop and inside a
container.  Reasonable defaults are provided so that local development works
out of the box.

Environment variables:

``CEXEC_API_KEY``
    Shared secret used to authenticate incoming requests.  Clients must send
    it in the ``x-api-key`` header.  Empty (the default) disables the check.

``CEXEC_WORKSPACE_ROOT``
    Scratch directory under which one workspace per session is created.
    Defaults to ``c-online-ide`` inside the system temporary directory.

``CEXEC_TOOLCHAINS``
    Comma-separated, ordered list of toolchains to probe.  The first one that
    responds is used.  Known names are ``gcc``, ``tcc`` and ``clang``.
    Defaults to ``gcc,tcc``.

``CEXEC_PROBE_TIMEOUT_MS``
    Wall-clock budget for a toolchain availability probe.  Default is 1500.

``CEXEC_COMPILE_TIMEOUT_MS``
    Wall-clock budget for one compilation.  Default is 8000.

``CEXEC_RUN_TIMEOUT_MS``
    Wall-clock budget for one program execution.  Default is 4000.

``CEXEC_MAX_OUTPUT_BYTES``
    Captured bytes kept per output stream; the rest is discarded and a
    truncation marker is appended.  Default is 1 MiB.

``CEXEC_MAX_SOURCE_BYTES``
    Largest accepted source submission.  Default is 512 KiB.

``CEXEC_SESSION_IDLE_SECONDS``
    Sessions unused for longer than this are reaped.  ``0`` disables
    reaping.  Default is 3600.

``CEXEC_REAP_INTERVAL_SECONDS``
    How often the idle reaper runs.  Default is 300.

``CEXEC_LOG_LEVEL``
    Level for the ``cexec`` logger.  Defaults to ``INFO``.

``PORT``
    The port on which the API server listens.  Defaults to 3000.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from typing import List

from .executor.compiler import TOOLCHAINS


@dataclass
class Config:
    """Centralised configuration object."""

    api_key: str
    workspace_root: str
    toolchains: List[str]
    probe_timeout_ms: int
    compile_timeout_ms: int
    run_timeout_ms: int
    max_output_bytes: int
    max_source_bytes: int
    session_idle_seconds: int
    reap_interval_seconds: int
    log_level: str
    port: int

    @classmethod
    def load(cls) -> "Config":
        # API key may be empty in local development but should be set when exposed.
        api_key = os.getenv("CEXEC_API_KEY", "")

        workspace_root = os.getenv(
            "CEXEC_WORKSPACE_ROOT", os.path.join(tempfile.gettempdir(), "c-online-ide")
        )

        toolchains_env = os.getenv("CEXEC_TOOLCHAINS", "gcc,tcc")
        toolchains = [name.strip().lower() for name in toolchains_env.split(",") if name.strip()]
        if not toolchains:
            raise ValueError("CEXEC_TOOLCHAINS must name at least one toolchain")
        unknown = [name for name in toolchains if name not in TOOLCHAINS]
        if unknown:
            raise ValueError(
                f"Invalid CEXEC_TOOLCHAINS entries: {', '.join(unknown)}. "
                f"Use any of: {', '.join(sorted(TOOLCHAINS))}."
            )

        def _int_var(name: str, default: int, minimum: int = 1) -> int:
            val = os.getenv(name)
            if val is None:
                return default
            try:
                parsed = int(val)
            except ValueError:
                raise ValueError(f"Invalid integer for {name}: {val}")
            if parsed < minimum:
                raise ValueError(f"{name} must be >= {minimum}, got {parsed}")
            return parsed

        probe_timeout_ms = _int_var("CEXEC_PROBE_TIMEOUT_MS", 1500)
        compile_timeout_ms = _int_var("CEXEC_COMPILE_TIMEOUT_MS", 8000)
        run_timeout_ms = _int_var("CEXEC_RUN_TIMEOUT_MS", 4000)
        max_output_bytes = _int_var("CEXEC_MAX_OUTPUT_BYTES", 1024 * 1024)
        max_source_bytes = _int_var("CEXEC_MAX_SOURCE_BYTES", 512 * 1024)
        session_idle_seconds = _int_var("CEXEC_SESSION_IDLE_SECONDS", 3600, minimum=0)
        reap_interval_seconds = _int_var("CEXEC_REAP_INTERVAL_SECONDS", 300)
        port = _int_var("PORT", 3000)

        log_level = os.getenv("CEXEC_LOG_LEVEL", "INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"Invalid CEXEC_LOG_LEVEL: {log_level}")

        return cls(
            api_key=api_key,
            workspace_root=workspace_root,
            toolchains=toolchains,
            probe_timeout_ms=probe_timeout_ms,
            compile_timeout_ms=compile_timeout_ms,
            run_timeout_ms=run_timeout_ms,
            max_output_bytes=max_output_bytes,
            max_source_bytes=max_source_bytes,
            session_idle_seconds=session_idle_seconds,
            reap_interval_seconds=reap_interval_seconds,
            log_level=log_level,
            port=port,
        )

    @classmethod
    def from_env(cls) -> "Config":
        """
        Alternate constructor used by the API to load configuration.

        This wrapper calls :meth:`load` to construct the configuration.
        It exists to provide a more intuitive name when consumed in
        application code.
        """
        return cls.load()
