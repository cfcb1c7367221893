from __future__ import annotations

import signal

import pytest

from agentrelay.providers import default_backends
from agentrelay.runners import cleanup
from agentrelay.runners.cleanup import (
    NullTerminator,
    ProcessInfo,
    PsTerminator,
    create_terminator,
    process_fingerprint,
)


def test_codex_fingerprint_pattern_names_command_resume_and_session():
    fp = process_fingerprint(default_backends()["codex-cli"], " thread-123 ")
    assert fp.provider == "codex-cli"
    assert "codex" in fp.pattern
    assert "resume" in fp.pattern
    assert "thread-123" in fp.pattern
    assert fp.matches("/usr/local/bin/codex exec resume thread-123 --json hi")
    assert not fp.matches("/usr/local/bin/codex exec resume thread-999 --json hi")
    assert not fp.matches("/usr/local/bin/codex exec --json thread-123")


def test_fingerprint_escapes_regex_metacharacters():
    fp = process_fingerprint(default_backends()["claude-cli"], "a.b+c")
    assert fp.matches("claude -p --resume a.b+c")
    assert not fp.matches("claude -p --resume aXbbc")


def test_create_terminator_is_noop_on_windows():
    assert isinstance(create_terminator("win32"), NullTerminator)


def test_create_terminator_without_ps_binary(monkeypatch):
    monkeypatch.setattr(cleanup.shutil, "which", lambda name: None)
    assert isinstance(create_terminator("linux"), NullTerminator)


@pytest.mark.asyncio
async def test_null_terminator_reports_zero():
    fp = process_fingerprint(default_backends()["codex-cli"], "t")
    assert await NullTerminator().find_and_terminate(fp) == 0


@pytest.mark.asyncio
async def test_ps_terminator_signals_only_matching_processes(monkeypatch):
    fp = process_fingerprint(default_backends()["codex-cli"], "thread-123")
    table = [
        ProcessInfo(pid=101, ppid=1, args="codex exec resume thread-123 --json hi"),
        ProcessInfo(pid=102, ppid=1, args="codex exec --json other"),
        ProcessInfo(pid=103, ppid=1, args="codex exec resume thread-123 --json again"),
        ProcessInfo(pid=104, ppid=1, args="codex exec resume thread-123 --json gone"),
    ]
    killed: list[tuple[int, int]] = []

    def fake_kill(pid, sig):
        if pid == 104:
            raise ProcessLookupError(pid)
        killed.append((pid, sig))

    terminator = PsTerminator()

    async def fake_list():
        return table

    monkeypatch.setattr(terminator, "_list_processes", fake_list)
    monkeypatch.setattr(cleanup.os, "kill", fake_kill)

    count = await terminator.find_and_terminate(fp)
    assert count == 2
    assert killed == [(101, signal.SIGTERM), (103, signal.SIGTERM)]


@pytest.mark.asyncio
async def test_ps_terminator_skips_own_process(monkeypatch):
    fp = process_fingerprint(default_backends()["codex-cli"], "thread-123")
    own_pid = cleanup.os.getpid()
    terminator = PsTerminator()

    async def fake_list():
        return [ProcessInfo(pid=own_pid, ppid=1, args="codex exec resume thread-123")]

    monkeypatch.setattr(terminator, "_list_processes", fake_list)
    monkeypatch.setattr(cleanup.os, "kill", lambda pid, sig: pytest.fail("must not kill self"))
    assert await terminator.find_and_terminate(fp) == 0
