"""Text chunking for channels with message length limits."""

from __future__ import annotations


def chunk_text(text: str, limit: int) -> list[str]:
    """Split text into chunks respecting paragraph boundaries.

    Paragraphs are packed greedily; a paragraph longer than the limit is split
    by line, and a line longer than the limit is hard-wrapped.
    """
    if limit <= 0 or len(text) <= limit:
        return [text] if text else []
    parts = []
    current = ""
    for para in text.split("\n\n"):
        if len(current) + len(para) + 2 <= limit:
            current = f"{current}\n\n{para}" if current else para
        else:
            if current:
                parts.append(current)
            if len(para) > limit:
                current = ""
                for line in para.split("\n"):
                    if len(current) + len(line) + 1 <= limit:
                        current = f"{current}\n{line}" if current else line
                    else:
                        if current:
                            parts.append(current)
                        while len(line) > limit:
                            parts.append(line[:limit])
                            line = line[limit:]
                        current = line
            else:
                current = para
    if current:
        parts.append(current)
    return parts


def mark_part(text: str, index: int, total: int) -> str:
    """Add `[i/n]` markers so split messages read as one reply."""
    if total <= 1:
        return text
    header = f"[{index}/{total}]\n" if index > 1 else ""
    footer = f"\n[{index}/{total}]" if index < total else ""
    return header + text + footer
