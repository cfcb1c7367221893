"""Subprocess transport helpers for runners."""

from __future__ import annotations

import asyncio
import logging
import os

log = logging.getLogger(__name__)


class SubprocessTransport:
    def __init__(self):
        self.process: asyncio.subprocess.Process | None = None

    async def start(
        self,
        cmd: list[str],
        *,
        cwd: str,
        env: dict[str, str] | None = None,
        stdout_limit: int,
    ) -> tuple[asyncio.StreamReader, asyncio.StreamReader]:
        proc_env = None
        if env:
            proc_env = {**os.environ, **env}
        self.process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=proc_env,
            limit=stdout_limit,
        )

        if self.process.stdout is None or self.process.stderr is None:
            raise RuntimeError("Subprocess pipes missing")

        return self.process.stdout, self.process.stderr

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    async def wait(self) -> int:
        if not self.process:
            return 0
        await self.process.wait()
        return int(self.process.returncode or 0)

    def cancel(self) -> None:
        if self.process and self.process.returncode is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass

    async def cancel_and_kill(self, timeout: float = 5.0) -> str | None:
        """Terminate the process, wait, then force-kill if still alive.

        Returns the name of the last signal sent, or None if the process had
        already exited.
        """
        proc = self.process
        if not proc or proc.returncode is not None:
            return None
        try:
            proc.terminate()
        except ProcessLookupError:
            return None
        sent = "SIGTERM"
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout)
        except (asyncio.TimeoutError, ProcessLookupError):
            log.warning("Process %s did not exit after SIGTERM, sending SIGKILL", proc.pid)
            try:
                proc.kill()
                sent = "SIGKILL"
            except ProcessLookupError:
                pass
            await proc.wait()
        return sent
