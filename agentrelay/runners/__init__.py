"""Runners for external agent CLIs."""

from agentrelay.runners.base import AgentInvocation, RunnerState, RunResult
from agentrelay.runners.cleanup import (
    NullTerminator,
    ProcessFingerprint,
    ProcessTerminator,
    PsTerminator,
    create_terminator,
    process_fingerprint,
)
from agentrelay.runners.cli_runner import CliAgentRunner
from agentrelay.runners.ports import BlockCallback, Runner

__all__ = [
    "AgentInvocation",
    "BlockCallback",
    "CliAgentRunner",
    "NullTerminator",
    "ProcessFingerprint",
    "ProcessTerminator",
    "PsTerminator",
    "RunResult",
    "Runner",
    "RunnerState",
    "create_terminator",
    "process_fingerprint",
]
