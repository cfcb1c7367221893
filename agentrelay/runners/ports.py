"""Ports (interfaces) for runner implementations.

The pipeline and dispatcher depend on these contracts rather than on the
concrete CLI runner.
"""

from __future__ import annotations

from typing import Callable, Protocol

from agentrelay.blocks import ReplyBlock
from agentrelay.runners.base import AgentInvocation, RunResult

BlockCallback = Callable[[ReplyBlock], None]


class Runner(Protocol):
    async def run_agent(
        self,
        invocation: AgentInvocation,
        on_block: BlockCallback | None = None,
    ) -> RunResult:
        ...

    def cancel(self) -> None:
        ...
