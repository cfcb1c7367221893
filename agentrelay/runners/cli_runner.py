"""CLI agent runner.

Owns one external agent process per invocation: stale-process cleanup on
resume, spawn, incremental output parsing, timeout enforcement and result
capture. Non-zero exits and kills are returned as data; only a failure to
spawn raises. The runner never touches the session registry.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from agentrelay.blocks import ReplyBlock
from agentrelay.errors import ProcessSpawnError, StaleProcessCleanupFailure
from agentrelay.providers import CliBackend, resolve_cli_backend
from agentrelay.runners.base import AgentInvocation, RunnerState, RunResult, RunState
from agentrelay.runners.cleanup import ProcessTerminator, create_terminator, process_fingerprint
from agentrelay.runners.ports import BlockCallback
from agentrelay.runners.processor import CliOutputProcessor
from agentrelay.runners.subprocess_transport import SubprocessTransport

log = logging.getLogger("runner")


def _signal_name(returncode: int | None) -> str | None:
    if returncode is None or returncode >= 0:
        return None
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


class CliAgentRunner:
    """Runs an agent CLI and streams parsed reply blocks."""

    def __init__(
        self,
        *,
        backends: dict[str, CliBackend] | None = None,
        terminator: ProcessTerminator | None = None,
        stdout_limit: int = 10 * 1024 * 1024,
        kill_grace_s: float = 5.0,
    ):
        self.backends = backends
        self.terminator = terminator if terminator is not None else create_terminator()
        self.stdout_limit = stdout_limit
        self.kill_grace_s = kill_grace_s
        self.state = RunnerState.IDLE
        self._transport: SubprocessTransport | None = None
        self._cancelled = False

    async def _cleanup_stale(self, backend: CliBackend, session_id: str) -> int:
        fingerprint = process_fingerprint(backend, session_id)
        try:
            count = await self.terminator.find_and_terminate(fingerprint)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            failure = StaleProcessCleanupFailure(
                f"Stale process cleanup failed for {fingerprint.provider}: {exc}"
            )
            log.warning("%s", failure, exc_info=True)
            return 0
        if count:
            log.info("Cleaned up %d stale %s process(es)", count, fingerprint.provider)
        return count

    async def run_agent(
        self,
        invocation: AgentInvocation,
        on_block: BlockCallback | None = None,
    ) -> RunResult:
        backend = resolve_cli_backend(invocation.provider, self.backends)
        if backend is None:
            self.state = RunnerState.FAILED
            raise ProcessSpawnError(invocation.provider, detail="no CLI backend configured")

        resume_id = invocation.cli_session_id.strip() if invocation.is_resume else None
        self._cancelled = False
        self.state = RunnerState.RESUMING if resume_id else RunnerState.SPAWNING

        if resume_id:
            await self._cleanup_stale(backend, resume_id)

        cmd = backend.build_command(
            invocation.prompt,
            model=invocation.model,
            session_id=resume_id,
        )
        log.info(
            "%s run %s: %s%s",
            backend.provider,
            invocation.run_id,
            invocation.prompt[:50],
            f" (resume {resume_id})" if resume_id else "",
        )

        run_state = RunState()
        processor = CliOutputProcessor(backend.provider)
        blocks: list[ReplyBlock] = []

        def emit(block: ReplyBlock) -> None:
            blocks.append(block)
            if on_block is not None:
                on_block(block)

        transport = SubprocessTransport()
        self._transport = transport
        try:
            stdout, stderr = await transport.start(
                cmd,
                cwd=invocation.workspace_dir,
                env=backend.env or None,
                stdout_limit=self.stdout_limit,
            )
        except OSError as exc:
            self.state = RunnerState.FAILED
            self._transport = None
            raise ProcessSpawnError(invocation.provider, cmd[0], detail=str(exc)) from exc

        self.state = RunnerState.RUNNING
        stdout_lines: list[str] = []
        stderr_chunks: list[str] = []

        async def read_stdout() -> None:
            while True:
                try:
                    raw = await stdout.readline()
                except ValueError:
                    # A single line exceeded the stream limit; keep the rest as raw text.
                    log.warning("%s output line exceeded %d bytes", backend.provider, self.stdout_limit)
                    rest = (await stdout.read()).decode(errors="replace")
                    stdout_lines.append(rest)
                    run_state.raw_output.append(rest)
                    return
                if not raw:
                    return
                line = raw.decode(errors="replace")
                stdout_lines.append(line)
                for block in processor.parse_line(line, run_state):
                    emit(block)

        async def read_stderr() -> None:
            while True:
                chunk = await stderr.read(4096)
                if not chunk:
                    return
                stderr_chunks.append(chunk.decode(errors="replace"))

        async def drive() -> int:
            readers = [asyncio.ensure_future(read_stdout()), asyncio.ensure_future(read_stderr())]
            try:
                await asyncio.gather(*readers)
            finally:
                for task in readers:
                    task.cancel()
            return await transport.wait()

        timed_out = False
        sent_signal: str | None = None
        try:
            returncode: int | None = await asyncio.wait_for(
                drive(), timeout=max(invocation.timeout_ms, 1) / 1000.0
            )
        except asyncio.TimeoutError:
            timed_out = True
            log.warning(
                "%s run %s timed out after %dms",
                backend.provider, invocation.run_id, invocation.timeout_ms,
            )
            sent_signal = await transport.cancel_and_kill(timeout=self.kill_grace_s)
            returncode = transport.process.returncode if transport.process else None
        except asyncio.CancelledError:
            await transport.cancel_and_kill(timeout=self.kill_grace_s)
            self.state = RunnerState.KILLED
            raise
        except Exception:
            log.exception("%s run %s aborted", backend.provider, invocation.run_id)
            await transport.cancel_and_kill(timeout=self.kill_grace_s)
            self.state = RunnerState.FAILED
            raise
        finally:
            self._transport = None

        for block in processor.finish(run_state):
            emit(block)

        sig = _signal_name(returncode) or sent_signal
        killed = timed_out or self._cancelled or sig is not None
        code = None if sig is not None else returncode

        result = RunResult(
            stdout="".join(stdout_lines),
            stderr="".join(stderr_chunks),
            code=code,
            signal=sig,
            killed=killed,
            timed_out=timed_out,
            timeout_ms=invocation.timeout_ms,
            run_id=invocation.run_id,
            session_id=run_state.session_id,
            blocks=blocks,
            duration_s=run_state.duration_s,
        )
        self.state = result.state
        log.info(
            "%s run %s finished in %.1fs: %d tool call(s), %s",
            backend.provider,
            invocation.run_id,
            run_state.duration_s,
            run_state.tool_count,
            "result received" if run_state.saw_result else "no result event",
        )
        if not result.ok:
            log.warning(
                "%s run %s ended %s (code=%s signal=%s)",
                backend.provider, invocation.run_id, result.state.value, code, sig,
            )
        return result

    def cancel(self) -> None:
        """Terminate the running process."""
        if self._transport is not None:
            self._cancelled = True
            self._transport.cancel()
