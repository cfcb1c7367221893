"""Reply blocks: ordered fragments of agent output."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BlockKind(str, Enum):
    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    SYSTEM_EVENT = "system_event"


@dataclass(frozen=True)
class ReplyBlock:
    kind: BlockKind
    seq: int = 0
    text: str = ""
    media_urls: tuple[str, ...] = ()
    tool_call_id: str | None = None
    tool_name: str | None = None
    is_error: bool = False
    synthetic: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.media_urls


def text_block(text: str, seq: int = 0, *, media_urls: tuple[str, ...] = ()) -> ReplyBlock:
    return ReplyBlock(kind=BlockKind.TEXT, seq=seq, text=text, media_urls=media_urls)


def system_event(text: str, seq: int = 0, *, is_error: bool = False) -> ReplyBlock:
    return ReplyBlock(kind=BlockKind.SYSTEM_EVENT, seq=seq, text=text, is_error=is_error)


MISSING_TOOL_RESULT_TEXT = (
    "[agentrelay] missing tool result in session history; "
    "inserted synthetic error result for transcript repair."
)


def missing_tool_result(tool_call_id: str, tool_name: str | None = None) -> ReplyBlock:
    return ReplyBlock(
        kind=BlockKind.TOOL_RESULT,
        text=MISSING_TOOL_RESULT_TEXT,
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        is_error=True,
        synthetic=True,
    )
