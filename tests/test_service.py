"""Tests for session lifecycle orchestration."""

from __future__ import annotations

import asyncio

import pytest

from cexec.errors import NoArtifact, UnknownSession

from conftest import MISSING_TOOLCHAIN, fake_source, requires_posix

pytestmark = requires_posix


def test_compile_then_run(make_manager):
    manager = make_manager()

    async def scenario():
        session_id = await manager.create_session()
        compiled = await manager.compile(session_id, fake_source("print('hello')"))
        ran = await manager.run(session_id, "")
        return manager.store.lookup(session_id), compiled, ran

    session, compiled, ran = asyncio.run(scenario())
    assert compiled.succeeded
    assert session.compiled
    assert session.last_compiled_at is not None
    assert ran.succeeded
    assert ran.output == "hello\n"


def test_run_before_compile_is_no_artifact(make_manager):
    manager = make_manager()

    async def scenario():
        session_id = await manager.create_session()
        # A stray binary in the workspace does not count as an artifact.
        (manager.store.lookup(session_id).workspace_dir / "a.out").write_text("#!/bin/sh\necho stale\n")
        await manager.run(session_id, "")

    with pytest.raises(NoArtifact):
        asyncio.run(scenario())


def test_unknown_session(make_manager):
    manager = make_manager()
    with pytest.raises(UnknownSession):
        asyncio.run(manager.compile("nope", fake_source("print(1)")))
    with pytest.raises(UnknownSession):
        asyncio.run(manager.run("nope", ""))


def test_recompile_replaces_artifact(make_manager):
    manager = make_manager()

    async def scenario():
        session_id = await manager.create_session()
        await manager.compile(session_id, fake_source("print('A')"))
        await manager.compile(session_id, fake_source("print('B')"))
        return await manager.run(session_id, "")

    assert asyncio.run(scenario()).output == "B\n"


def test_failed_compile_discards_previous_artifact(make_manager):
    manager = make_manager()

    async def scenario():
        session_id = await manager.create_session()
        await manager.compile(session_id, fake_source("print('A')"))
        failed = await manager.compile(session_id, "not ( python")
        assert not failed.succeeded
        assert not manager.store.lookup(session_id).compiled
        await manager.run(session_id, "")

    with pytest.raises(NoArtifact):
        asyncio.run(scenario())


def test_compile_and_run_threads_stdin(make_manager):
    manager = make_manager()

    async def scenario():
        session_id = await manager.create_session()
        return await manager.compile_and_run(
            session_id, fake_source("import sys\nprint(sys.stdin.read().upper())"), "ping\n"
        )

    result = asyncio.run(scenario())
    assert result.succeeded
    assert "PING" in result.output


def test_compile_and_run_stops_on_compile_failure(make_manager):
    manager = make_manager()

    async def scenario():
        session_id = await manager.create_session()
        return await manager.compile_and_run(session_id, "not ( python", "")

    result = asyncio.run(scenario())
    assert not result.succeeded
    assert result.failure == "compilation_failed"
    assert result.output.startswith("Compilation error:\n")


def test_compile_without_toolchain(make_manager):
    manager = make_manager(toolchains=[MISSING_TOOLCHAIN])

    async def scenario():
        session_id = await manager.create_session()
        return await manager.compile(session_id, "int main(void){return 0;}")

    result = asyncio.run(scenario())
    assert not result.succeeded
    assert result.failure == "no_toolchain"


def test_missing_toolchain_leaves_workspace_files(make_manager):
    manager = make_manager()

    async def scenario():
        session_id = await manager.create_session()
        first = fake_source("print('A')")
        await manager.compile(session_id, first)
        manager.compiler.toolchains = [MISSING_TOOLCHAIN]
        result = await manager.compile(session_id, "int main(void){return 0;}")
        return manager.store.lookup(session_id), first, result

    session, first, result = asyncio.run(scenario())
    assert result.failure == "no_toolchain"
    assert not session.compiled
    assert (session.workspace_dir / "a.out").is_file()
    assert (session.workspace_dir / "main.c").read_text(encoding="utf-8") == first


def test_concurrent_compile_and_run_are_serialised(make_manager):
    manager = make_manager()

    async def scenario():
        session_id = await manager.create_session()
        await manager.compile(session_id, fake_source("print('A')"))
        slow_b = "import time\ntime.sleep(0.3)\n" + fake_source("print('B')")
        return await asyncio.gather(
            manager.compile(session_id, slow_b),
            manager.run(session_id, ""),
        )

    compiled, ran = asyncio.run(scenario())
    assert compiled.succeeded
    assert ran.output == "B\n"


def test_sessions_do_not_block_each_other(make_manager):
    manager = make_manager(run_timeout_ms=5000)

    async def scenario():
        slow = await manager.create_session()
        fast = await manager.create_session()
        await manager.compile(slow, fake_source("import time\ntime.sleep(1.5)\nprint('slow')"))
        await manager.compile(fast, fake_source("print('fast')"))
        order = []

        async def run(session_id):
            result = await manager.run(session_id, "")
            order.append(result.output.strip())

        await asyncio.gather(run(slow), run(fast))
        return order

    assert asyncio.run(scenario()) == ["fast", "slow"]


def test_delete_session(make_manager):
    manager = make_manager()

    async def scenario():
        session_id = await manager.create_session()
        workspace = manager.store.lookup(session_id).workspace_dir
        await manager.delete_session(session_id)
        return session_id, workspace

    session_id, workspace = asyncio.run(scenario())
    assert not workspace.exists()
    assert session_id not in manager.store
    with pytest.raises(UnknownSession):
        asyncio.run(manager.delete_session(session_id))


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_reap_idle_sessions(make_manager):
    clock = FakeClock()
    manager = make_manager(clock=clock, session_idle_seconds=60)

    async def scenario():
        idle = await manager.create_session()
        clock.now = 30
        active = await manager.create_session()
        clock.now = 70
        return idle, active, await manager.reap_idle()

    idle, active, reaped = asyncio.run(scenario())
    assert reaped == [idle]
    assert idle not in manager.store
    assert active in manager.store


def test_reaping_disabled_by_default(make_manager):
    clock = FakeClock()
    manager = make_manager(clock=clock)

    async def scenario():
        await manager.create_session()
        clock.now = 10 ** 6
        return await manager.reap_idle()

    assert asyncio.run(scenario()) == []
    assert len(manager.store) == 1


def test_close_removes_all_workspaces(make_manager):
    manager = make_manager(session_idle_seconds=60, reap_interval_seconds=1)

    async def scenario():
        manager.start_reaper()
        ids = [await manager.create_session() for _ in range(3)]
        dirs = [manager.store.lookup(sid).workspace_dir for sid in ids]
        await manager.close()
        return dirs

    dirs = asyncio.run(scenario())
    assert all(not d.exists() for d in dirs)
    assert len(manager.store) == 0
