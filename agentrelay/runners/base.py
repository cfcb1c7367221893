"""Invocation and result types shared by runner implementations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from agentrelay.blocks import ReplyBlock
from agentrelay.errors import ProcessExitError, ProcessTimeoutError


class RunnerState(str, Enum):
    IDLE = "idle"
    SPAWNING = "spawning"
    RESUMING = "resuming"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    KILLED = "killed"


@dataclass(frozen=True)
class AgentInvocation:
    """One run request. Consumed exactly once by a runner."""

    session_id: str
    session_file: str
    workspace_dir: str
    prompt: str
    provider: str
    model: str | None
    timeout_ms: int
    run_id: str
    cli_session_id: str | None = None

    @property
    def is_resume(self) -> bool:
        return bool(self.cli_session_id and self.cli_session_id.strip())


@dataclass
class RunState:
    """Accumulates state during a runner execution."""

    start_time: datetime = field(default_factory=datetime.now)
    session_id: str | None = None
    seq: int = 0
    text_count: int = 0
    tool_count: int = 0
    saw_result: bool = False
    saw_error: bool = False
    raw_output: list[str] = field(default_factory=list)

    def next_seq(self) -> int:
        self.seq += 1
        return self.seq

    @property
    def duration_s(self) -> float:
        return (datetime.now() - self.start_time).total_seconds()


@dataclass
class RunResult:
    stdout: str
    stderr: str
    code: int | None
    signal: str | None = None
    killed: bool = False
    timed_out: bool = False
    timeout_ms: int = 0
    run_id: str | None = None
    session_id: str | None = None
    blocks: list[ReplyBlock] = field(default_factory=list)
    duration_s: float = 0.0

    @property
    def state(self) -> RunnerState:
        if self.timed_out:
            return RunnerState.TIMED_OUT
        if self.killed:
            return RunnerState.KILLED
        if self.code == 0:
            return RunnerState.COMPLETED
        return RunnerState.FAILED

    @property
    def ok(self) -> bool:
        return self.state is RunnerState.COMPLETED

    def raise_for_status(self) -> None:
        if self.timed_out:
            raise ProcessTimeoutError(self.timeout_ms, run_id=self.run_id)
        if not self.ok:
            raise ProcessExitError(self.code, signal=self.signal, stderr=self.stderr)
