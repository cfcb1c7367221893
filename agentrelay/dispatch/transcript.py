"""JSONL transcript of the blocks produced during a conversation."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from agentrelay.blocks import ReplyBlock


class SessionTranscript:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def append(self, block: ReplyBlock) -> None:
        entry: dict[str, object] = {
            "ts": datetime.now().isoformat(),
            "type": block.kind.value,
            "seq": block.seq,
            "text": block.text,
        }
        if block.media_urls:
            entry["media_urls"] = list(block.media_urls)
        if block.tool_call_id:
            entry["tool_call_id"] = block.tool_call_id
        if block.tool_name:
            entry["tool_name"] = block.tool_name
        if block.is_error:
            entry["is_error"] = True
        if block.synthetic:
            entry["synthetic"] = True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def read(self) -> list[dict]:
        if not self.path.exists():
            return []
        entries = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line:
                entries.append(json.loads(line))
        return entries
