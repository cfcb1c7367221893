"""Outbound channel adapter contract.

An adapter knows how to reach one messaging platform: whether it is
configured, how to turn a raw destination into a target, and how to send text,
media and typing signals there. Chunking happens inside `send_text` so callers
never need to know a channel's length limit.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from agentrelay.blocks import ReplyBlock
from agentrelay.channels.chunk import chunk_text
from agentrelay.errors import DeliveryTargetError

Chunker = Callable[[str, int], list[str]]

_DEFAULT_CHUNKER: Any = object()


class DeliveryMode(str, Enum):
    DIRECT = "direct"
    QUEUED = "queued"


@dataclass(frozen=True)
class ChannelTarget:
    channel: str
    to: str
    account_id: str | None = None
    reply_to_id: str | None = None


@dataclass
class DeliveryResult:
    channel: str
    message_ids: list[str] = field(default_factory=list)
    chunks: int = 0

    def merge(self, other: "DeliveryResult") -> "DeliveryResult":
        return DeliveryResult(
            channel=self.channel,
            message_ids=self.message_ids + other.message_ids,
            chunks=self.chunks + other.chunks,
        )


def channel_config(config: Mapping[str, Any] | None, channel: str) -> dict:
    channels = (config or {}).get("channels") or {}
    section = channels.get(channel) or {}
    return dict(section)


class ChannelOutboundAdapter(abc.ABC):
    id: str = ""
    label: str = ""
    aliases: tuple[str, ...] = ()
    delivery_mode: DeliveryMode = DeliveryMode.DIRECT
    supports_typing: bool = False
    default_chunk_limit: int | None = 4000

    def __init__(
        self,
        *,
        text_chunk_limit: int | None = None,
        chunker: Chunker | None = _DEFAULT_CHUNKER,
    ):
        self.text_chunk_limit = (
            text_chunk_limit if text_chunk_limit is not None else self.default_chunk_limit
        )
        self.chunker: Chunker | None = chunk_text if chunker is _DEFAULT_CHUNKER else chunker

    @abc.abstractmethod
    def is_configured(self, config: Mapping[str, Any] | None) -> bool: ...

    @abc.abstractmethod
    def resolve_target(
        self,
        to: str | None,
        *,
        account_id: str | None = None,
        reply_to_id: str | None = None,
    ) -> ChannelTarget:
        """Validate a raw destination. Raises DeliveryTargetError."""

    @abc.abstractmethod
    async def send_chunk(self, target: ChannelTarget, text: str, index: int, total: int) -> str | None:
        """Send one already-chunked message; return the platform message id."""

    @abc.abstractmethod
    async def send_media(self, target: ChannelTarget, text: str, media_url: str) -> DeliveryResult: ...

    async def send_typing(self, target: ChannelTarget) -> None:
        return None

    def chunk(self, text: str) -> list[str]:
        if not text:
            return []
        if self.chunker is None or not self.text_chunk_limit:
            return [text]
        return self.chunker(text, self.text_chunk_limit)

    async def send_text(self, target: ChannelTarget, text: str) -> DeliveryResult:
        chunks = self.chunk(text)
        result = DeliveryResult(channel=self.id)
        total = len(chunks)
        for i, chunk in enumerate(chunks, 1):
            message_id = await self.send_chunk(target, chunk, i, total)
            result.chunks += 1
            if message_id:
                result.message_ids.append(message_id)
        return result

    async def close(self) -> None:
        return None

    def _require_to(self, to: str | None, hint: str) -> str:
        value = (to or "").strip()
        if not value:
            raise DeliveryTargetError(self.id, f"Delivering to {self.label} requires --to {hint}")
        return value


class ChannelDelivery:
    """Binds an adapter to one raw destination and delivers reply blocks."""

    def __init__(
        self,
        adapter: ChannelOutboundAdapter,
        to: str | None,
        *,
        account_id: str | None = None,
        reply_to_id: str | None = None,
    ):
        self.adapter = adapter
        self.to = to
        self.account_id = account_id
        self.reply_to_id = reply_to_id

    @property
    def delivery_mode(self) -> DeliveryMode:
        return self.adapter.delivery_mode

    def resolve_target(self) -> ChannelTarget:
        return self.adapter.resolve_target(
            self.to,
            account_id=self.account_id,
            reply_to_id=self.reply_to_id,
        )

    async def deliver(self, block: ReplyBlock) -> DeliveryResult:
        target = self.resolve_target()
        if not block.media_urls:
            return await self.adapter.send_text(target, block.text)
        result = DeliveryResult(channel=self.adapter.id)
        for i, url in enumerate(block.media_urls):
            caption = block.text if i == 0 else ""
            result = result.merge(await self.adapter.send_media(target, caption, url))
        return result

    async def send_typing(self) -> None:
        if not self.adapter.supports_typing:
            return
        try:
            target = self.resolve_target()
        except DeliveryTargetError:
            return
        await self.adapter.send_typing(target)
