"""Best-effort cleanup of stale agent processes before a resume.

A resumable CLI session must not have two processes attached to it. Before a
resume we look for leftover processes whose command line matches the
session's fingerprint and terminate them. Platforms without a way to
enumerate process command lines get a terminator that does nothing.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import signal
import sys
from dataclasses import dataclass
from typing import Protocol

from agentrelay.providers import CliBackend, normalize_provider_id

log = logging.getLogger("runner.cleanup")


@dataclass(frozen=True)
class ProcessFingerprint:
    provider: str
    command: str
    session_id: str

    @property
    def pattern(self) -> str:
        return f"{re.escape(self.command)}.*resume.*{re.escape(self.session_id)}"

    def matches(self, args: str) -> bool:
        return re.search(self.pattern, args) is not None

    def __str__(self) -> str:
        return self.pattern


def process_fingerprint(backend: CliBackend, session_id: str) -> ProcessFingerprint:
    provider = normalize_provider_id(backend.provider) or backend.provider
    return ProcessFingerprint(
        provider=provider,
        command=backend.command_name,
        session_id=session_id.strip(),
    )


class ProcessTerminator(Protocol):
    async def find_and_terminate(self, fingerprint: ProcessFingerprint) -> int: ...


class NullTerminator:
    """Used where process enumeration is unavailable."""

    async def find_and_terminate(self, fingerprint: ProcessFingerprint) -> int:
        return 0


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    ppid: int
    args: str


class PsTerminator:
    """Enumerate processes with `ps` and SIGTERM the ones matching."""

    def __init__(self, ps_bin: str = "ps"):
        self.ps_bin = ps_bin

    async def _list_processes(self) -> list[ProcessInfo]:
        proc = await asyncio.create_subprocess_exec(
            self.ps_bin, "-eo", "pid=,ppid=,args=",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        out, _ = await proc.communicate()
        table: list[ProcessInfo] = []
        for line in out.decode(errors="replace").splitlines():
            line = line.strip()
            if not line:
                continue
            parts = line.split(maxsplit=2)
            if len(parts) < 3:
                continue
            try:
                pid = int(parts[0])
                ppid = int(parts[1])
            except ValueError:
                continue
            table.append(ProcessInfo(pid=pid, ppid=ppid, args=parts[2]))
        return table

    async def find_and_terminate(self, fingerprint: ProcessFingerprint) -> int:
        own = {os.getpid(), os.getppid()}
        killed = 0
        for proc in await self._list_processes():
            if proc.pid in own or not fingerprint.matches(proc.args):
                continue
            try:
                os.kill(proc.pid, signal.SIGTERM)
            except ProcessLookupError:
                continue
            except PermissionError:
                log.warning("No permission to terminate stale pid=%s", proc.pid)
                continue
            killed += 1
            log.info(
                "Terminated stale %s process pid=%s cmd=%s",
                fingerprint.provider, proc.pid, proc.args[:180],
            )
        return killed


def create_terminator(platform: str | None = None) -> ProcessTerminator:
    platform = platform or sys.platform
    if platform.startswith("win"):
        return NullTerminator()
    ps_bin = shutil.which("ps")
    if not ps_bin:
        return NullTerminator()
    return PsTerminator(ps_bin)
