"""Session lifecycle orchestration.

:class:`SessionManager` ties the session store, the compiler invoker and
the program executor together.  Per session the life cycle is::

    Created --compile ok--> Compiled --run--> Compiled

Every compile first discards the previous binary, so a failed compile
leaves the session in ``Created`` and a later run reports
:class:`~cexec.errors.NoArtifact`.

Operations on the same session are serialised with an ``asyncio.Lock``;
concurrent requests queue behind the one in flight, so a run never sees a
half-written binary.  Child processes are awaited in worker threads,
leaving the event loop free for other sessions.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from .errors import NoArtifact
from .executor import CompileResult, CompilerInvoker, ProcessRunner, ProgramExecutor, RunResult
from .sessions import SessionStore
from .workspace import WorkspaceManager

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger("cexec.service")


class SessionManager:
    """Create sessions and compile/run programs inside them."""

    def __init__(
        self,
        store: SessionStore,
        compiler: CompilerInvoker,
        executor: ProgramExecutor,
        session_idle_seconds: int = 0,
        reap_interval_seconds: int = 300,
    ) -> None:
        self.store = store
        self.compiler = compiler
        self.executor = executor
        self.session_idle_seconds = session_idle_seconds
        self.reap_interval_seconds = reap_interval_seconds
        self._locks: Dict[str, asyncio.Lock] = {}
        self._reaper: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: "Config") -> "SessionManager":
        runner = ProcessRunner(max_output_bytes=config.max_output_bytes)
        return cls(
            store=SessionStore(WorkspaceManager(config.workspace_root)),
            compiler=CompilerInvoker.from_names(
                runner,
                config.toolchains,
                compile_timeout_ms=config.compile_timeout_ms,
                probe_timeout_ms=config.probe_timeout_ms,
            ),
            executor=ProgramExecutor(runner, timeout_ms=config.run_timeout_ms),
            session_idle_seconds=config.session_idle_seconds,
            reap_interval_seconds=config.reap_interval_seconds,
        )

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        # Raises UnknownSession before a lock is ever allocated for a bad id.
        self.store.lookup(session_id)
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def is_busy(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    async def create_session(self) -> str:
        return self.store.create_session()

    async def compile(self, session_id: str, source: str) -> CompileResult:
        async with self._lock_for(session_id):
            return await self._compile(session_id, source)

    async def run(self, session_id: str, stdin: str = "") -> RunResult:
        async with self._lock_for(session_id):
            return await self._run(session_id, stdin)

    async def compile_and_run(self, session_id: str, source: str, stdin: str = "") -> RunResult:
        async with self._lock_for(session_id):
            compiled = await self._compile(session_id, source)
            if not compiled.succeeded:
                return RunResult(succeeded=False, output=compiled.message, failure=compiled.failure)
            return await self._run(session_id, stdin)

    async def _compile(self, session_id: str, source: str) -> CompileResult:
        # The session may have been deleted while this request waited on the lock.
        session = self.store.lookup(session_id)
        self.store.touch(session_id)
        toolchain = await asyncio.to_thread(self.compiler.detect_toolchain)
        if toolchain is None:
            # Forget the old binary but leave the workspace alone.
            self.store.clear_artifact(session_id, delete=False)
            return self.compiler.no_toolchain_result()
        self.store.clear_artifact(session_id)
        result = await asyncio.to_thread(
            self.compiler.compile, source, session.workspace_dir, toolchain
        )
        if result.succeeded:
            self.store.record_artifact(session_id, result.binary_path)
        logger.info(
            "Compile session=%s toolchain=%s succeeded=%s failure=%s",
            session_id,
            result.toolchain,
            result.succeeded,
            result.failure,
        )
        return result

    async def _run(self, session_id: str, stdin: str) -> RunResult:
        session = self.store.lookup(session_id)
        self.store.touch(session_id)
        if session.built_binary_path is None:
            raise NoArtifact()
        result = await asyncio.to_thread(
            self.executor.execute, session.built_binary_path, session.workspace_dir, stdin
        )
        logger.info(
            "Run session=%s succeeded=%s timed_out=%s exit_code=%s signal=%s",
            session_id,
            result.succeeded,
            result.timed_out,
            result.exit_code,
            result.terminating_signal,
        )
        return result

    async def delete_session(self, session_id: str) -> None:
        async with self._lock_for(session_id):
            self.store.remove(session_id)
        self._locks.pop(session_id, None)
        logger.info("Deleted session %s", session_id)

    async def reap_idle(self) -> List[str]:
        """Remove sessions idle longer than ``session_idle_seconds``."""
        if self.session_idle_seconds <= 0:
            return []
        reaped = []
        for session_id in self.store.idle_sessions(self.session_idle_seconds):
            if self.is_busy(session_id):
                continue
            self.store.remove(session_id)
            self._locks.pop(session_id, None)
            reaped.append(session_id)
        if reaped:
            logger.info("Reaped %d idle session(s)", len(reaped))
        return reaped

    async def _reap_forever(self) -> None:
        while True:
            await asyncio.sleep(self.reap_interval_seconds)
            try:
                await self.reap_idle()
            except Exception:
                logger.exception("Idle session sweep failed")

    def start_reaper(self) -> None:
        if self.session_idle_seconds <= 0 or self._reaper is not None:
            return
        self._reaper = asyncio.create_task(self._reap_forever())

    async def close(self) -> None:
        """Stop the reaper and delete every workspace."""
        if self._reaper is not None:
            self._reaper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reaper
            self._reaper = None
        self.store.close()
        self._locks.clear()
