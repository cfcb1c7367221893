"""CLI output processing.

Turns the JSON lines printed by agent CLIs into ordered reply blocks and picks
up the provider session id for continuity. Separates parsing from the
subprocess orchestration in `agentrelay.runners.cli_runner`.
"""

from __future__ import annotations

import json
from pathlib import Path

from agentrelay.blocks import BlockKind, ReplyBlock
from agentrelay.runners.base import RunState

_CODEX_TOOL_ITEMS = {"command_execution", "mcp_tool_call", "file_change", "web_search"}


def _clean_label(value: object, *, max_len: int = 180) -> str | None:
    if not isinstance(value, str):
        return None
    s = " ".join(value.split())
    if not s:
        return None
    if len(s) > max_len:
        return s[: max_len - 3] + "..."
    return s


def _flatten_content(content: object) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
            elif isinstance(item, str):
                parts.append(item)
        return "\n".join(parts)
    return ""


class CliOutputProcessor:
    def __init__(self, provider: str):
        self.provider = provider

    def _block(self, state: RunState, kind: BlockKind, **kwargs) -> ReplyBlock:
        return ReplyBlock(kind=kind, seq=state.next_seq(), **kwargs)

    def _text(self, state: RunState, text: str) -> ReplyBlock | None:
        text = (text or "").strip()
        if not text:
            return None
        state.text_count += 1
        return self._block(state, BlockKind.TEXT, text=text)

    def _tool_call(self, state: RunState, call_id: str, name: str, detail: str | None) -> ReplyBlock:
        state.tool_count += 1
        tool_id = name.strip().lower() if name else "?"
        desc = f"[tool:{tool_id} {detail}]" if detail else f"[tool:{tool_id}]"
        return self._block(
            state,
            BlockKind.TOOL_CALL,
            text=desc,
            tool_call_id=call_id,
            tool_name=name,
        )

    # -----------------
    # Claude stream-json
    # -----------------

    def _claude_tool_detail(self, name: str, tool_input: object) -> str | None:
        if not isinstance(tool_input, dict):
            return None
        if name == "Bash":
            return _clean_label(tool_input.get("command"), max_len=80)
        if name in ("Read", "Write", "Edit"):
            path = str(tool_input.get("file_path", "") or "")
            return Path(path).name or None
        return _clean_label(tool_input.get("description")) or _clean_label(tool_input.get("title"))

    def _handle_claude(self, event: dict, state: RunState) -> list[ReplyBlock]:
        etype = event.get("type")
        session_id = event.get("session_id")
        if isinstance(session_id, str) and session_id:
            state.session_id = session_id

        out: list[ReplyBlock] = []
        if etype == "assistant":
            content = (event.get("message") or {}).get("content") or []
            for block in content:
                if not isinstance(block, dict):
                    continue
                btype = block.get("type")
                if btype == "text":
                    item = self._text(state, block.get("text", ""))
                    if item:
                        out.append(item)
                elif btype == "tool_use" and block.get("id"):
                    name = str(block.get("name") or "?")
                    out.append(
                        self._tool_call(
                            state,
                            str(block["id"]),
                            name,
                            self._claude_tool_detail(name, block.get("input")),
                        )
                    )
        elif etype == "user":
            content = (event.get("message") or {}).get("content") or []
            for block in content:
                if not isinstance(block, dict) or block.get("type") != "tool_result":
                    continue
                call_id = block.get("tool_use_id")
                if not call_id:
                    continue
                out.append(
                    self._block(
                        state,
                        BlockKind.TOOL_RESULT,
                        text=_flatten_content(block.get("content")),
                        tool_call_id=str(call_id),
                        is_error=bool(block.get("is_error")),
                    )
                )
        elif etype == "result":
            state.saw_result = True
            if event.get("is_error"):
                state.saw_error = True
                message = _flatten_content(event.get("result")) or "Agent reported an error"
                out.append(self._block(state, BlockKind.SYSTEM_EVENT, text=message, is_error=True))
            elif state.text_count == 0:
                # Plain `--output-format json` only carries the final result.
                item = self._text(state, _flatten_content(event.get("result")))
                if item:
                    out.append(item)
        return out

    # -----------------
    # Codex exec --json
    # -----------------

    def _codex_tool_detail(self, item: dict) -> str | None:
        itype = item.get("type")
        if itype == "command_execution":
            return _clean_label(item.get("command"), max_len=80)
        if itype == "mcp_tool_call":
            server = item.get("server") or ""
            tool = item.get("tool") or ""
            return _clean_label(f"{server}.{tool}".strip("."))
        if itype == "web_search":
            return _clean_label(item.get("query"))
        return None

    def _handle_codex(self, event: dict, state: RunState) -> list[ReplyBlock]:
        etype = event.get("type")
        out: list[ReplyBlock] = []
        if etype == "thread.started":
            thread_id = event.get("thread_id")
            if isinstance(thread_id, str) and thread_id:
                state.session_id = thread_id
            return out

        if etype in ("error", "turn.failed"):
            state.saw_error = True
            err = event.get("error")
            message = event.get("message")
            if isinstance(err, dict):
                message = err.get("message") or message
            out.append(
                self._block(
                    state,
                    BlockKind.SYSTEM_EVENT,
                    text=str(message or "Agent reported an error"),
                    is_error=True,
                )
            )
            return out

        if etype == "turn.completed":
            state.saw_result = True
            return out

        item = event.get("item")
        if not isinstance(item, dict):
            return out
        itype = item.get("type")
        item_id = str(item.get("id") or "")

        if etype == "item.started" and itype in _CODEX_TOOL_ITEMS and item_id:
            out.append(self._tool_call(state, item_id, str(itype), self._codex_tool_detail(item)))
        elif etype == "item.completed":
            if itype == "agent_message":
                block = self._text(state, item.get("text", ""))
                if block:
                    out.append(block)
            elif itype in _CODEX_TOOL_ITEMS and item_id:
                output = item.get("aggregated_output") or item.get("result") or ""
                exit_code = item.get("exit_code")
                failed = item.get("status") == "failed" or (
                    isinstance(exit_code, int) and exit_code != 0
                )
                out.append(
                    self._block(
                        state,
                        BlockKind.TOOL_RESULT,
                        text=_flatten_content(output) if not isinstance(output, str) else output,
                        tool_call_id=item_id,
                        tool_name=str(itype),
                        is_error=failed,
                    )
                )
        return out

    def parse_line(self, line: str, state: RunState) -> list[ReplyBlock]:
        line = line.strip()
        if not line:
            return []
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            state.raw_output.append(line)
            return []
        if not isinstance(event, dict):
            state.raw_output.append(line)
            return []

        etype = str(event.get("type") or "")
        if etype in ("system", "assistant", "user", "result"):
            return self._handle_claude(event, state)
        return self._handle_codex(event, state)

    def finish(self, state: RunState) -> list[ReplyBlock]:
        """Flush plain-text output when the CLI printed no structured text."""
        if state.text_count or not state.raw_output:
            return []
        block = self._text(state, "\n".join(state.raw_output))
        return [block] if block else []
