from __future__ import annotations

from agentrelay.blocks import MISSING_TOOL_RESULT_TEXT, BlockKind, ReplyBlock, text_block
from agentrelay.dispatch import ToolResultGuard


def _call(call_id: str, name: str = "bash") -> ReplyBlock:
    return ReplyBlock(kind=BlockKind.TOOL_CALL, tool_call_id=call_id, tool_name=name)


def _result(call_id: str) -> ReplyBlock:
    return ReplyBlock(kind=BlockKind.TOOL_RESULT, tool_call_id=call_id, text="ok")


def _kinds(written):
    return [(b.kind, b.tool_call_id, b.synthetic) for b in written]


def test_unanswered_call_gets_exactly_one_synthetic_result():
    written: list[ReplyBlock] = []
    guard = ToolResultGuard(written.append)
    guard.append(_call("c1", "read"))

    first = guard.flush_pending_tool_results()
    second = guard.flush_pending_tool_results()

    assert len(first) == 1
    assert second == []
    synthetic = [b for b in written if b.synthetic]
    assert len(synthetic) == 1
    assert synthetic[0].tool_call_id == "c1"
    assert synthetic[0].tool_name == "read"
    assert synthetic[0].is_error
    assert synthetic[0].text == MISSING_TOOL_RESULT_TEXT


def test_answered_call_needs_no_repair():
    written: list[ReplyBlock] = []
    guard = ToolResultGuard(written.append)
    guard.append(_call("c1"))
    guard.append(_result("c1"))
    assert guard.flush_pending_tool_results() == []
    assert guard.pending_ids() == []
    assert len(written) == 2


def test_text_after_pending_call_flushes_first():
    written: list[ReplyBlock] = []
    guard = ToolResultGuard(written.append)
    guard.append(_call("c1"))
    guard.append(text_block("moving on"))
    assert _kinds(written) == [
        (BlockKind.TOOL_CALL, "c1", False),
        (BlockKind.TOOL_RESULT, "c1", True),
        (BlockKind.TEXT, None, False),
    ]


def test_parallel_calls_stay_pending_until_next_batch():
    written: list[ReplyBlock] = []
    guard = ToolResultGuard(written.append)
    guard.append(_call("c1"))
    guard.append(_call("c2"))
    assert guard.pending_ids() == ["c1", "c2"]

    guard.append(_result("c2"))
    guard.append(_call("c3"))

    assert _kinds(written) == [
        (BlockKind.TOOL_CALL, "c1", False),
        (BlockKind.TOOL_CALL, "c2", False),
        (BlockKind.TOOL_RESULT, "c2", False),
        (BlockKind.TOOL_RESULT, "c1", True),
        (BlockKind.TOOL_CALL, "c3", False),
    ]
    assert guard.pending_ids() == ["c3"]
