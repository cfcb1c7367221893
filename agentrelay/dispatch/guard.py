"""Tool-result guard.

Every tool call written to a transcript must eventually be followed by a
result for the same call id. Calls left dangling are answered with a
synthetic error result so the transcript stays replayable by providers that
reject unpaired tool calls.
"""

from __future__ import annotations

import logging
from typing import Callable

from agentrelay.blocks import BlockKind, ReplyBlock, missing_tool_result

log = logging.getLogger("dispatch.guard")


class ToolResultGuard:
    """Wraps an append callable and keeps tool calls paired with results.

    Consecutive tool-call blocks form one batch (parallel calls). Pending calls
    are flushed when a block that is neither a call nor a result arrives, when
    a new batch of calls starts, or on an explicit flush.
    """

    def __init__(self, append: Callable[[ReplyBlock], None]):
        self._append = append
        self._pending: dict[str, str | None] = {}
        self._last_kind: BlockKind | None = None

    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def append(self, block: ReplyBlock) -> None:
        if block.kind == BlockKind.TOOL_RESULT:
            if block.tool_call_id:
                self._pending.pop(block.tool_call_id, None)
            self._append(block)
        elif block.kind == BlockKind.TOOL_CALL:
            if self._pending and self._last_kind != BlockKind.TOOL_CALL:
                self.flush_pending_tool_results()
            self._append(block)
            if block.tool_call_id:
                self._pending[block.tool_call_id] = block.tool_name
        else:
            if self._pending:
                self.flush_pending_tool_results()
            self._append(block)
        self._last_kind = block.kind

    def flush_pending_tool_results(self) -> list[ReplyBlock]:
        """Write a synthetic error result for every unanswered call."""
        if not self._pending:
            return []
        pending = self._pending
        self._pending = {}
        synthetic = []
        for call_id, name in pending.items():
            block = missing_tool_result(call_id, name)
            self._append(block)
            synthetic.append(block)
        log.warning("Inserted %d synthetic tool result(s): %s", len(synthetic), ", ".join(pending))
        return synthetic
