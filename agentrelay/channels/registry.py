"""Channel registry and outbound channel selection."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from agentrelay.channels.base import ChannelOutboundAdapter
from agentrelay.errors import ChannelRequiredError, UnknownChannelError

log = logging.getLogger("channels")

CHANNEL_ALIASES: dict[str, str] = {
    "jabber": "xmpp",
    "http": "webhook",
}

_CHANNEL_ID_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


def normalize_channel_id(raw: str | None) -> str | None:
    value = (raw or "").strip().lower()
    if not value:
        return None
    value = CHANNEL_ALIASES.get(value, value)
    if not _CHANNEL_ID_RE.match(value):
        return None
    return value


@dataclass(frozen=True)
class ChannelSelection:
    channel: str
    adapter: ChannelOutboundAdapter
    configured: list[str] = field(default_factory=list)


class ChannelRegistry:
    """Adapters keyed by channel id. Read-only once frozen."""

    def __init__(self, adapters: list[ChannelOutboundAdapter] | None = None):
        self._adapters: dict[str, ChannelOutboundAdapter] = {}
        self._aliases: dict[str, str] = {}
        self._frozen = False
        for adapter in adapters or []:
            self.register(adapter)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def register(self, adapter: ChannelOutboundAdapter) -> None:
        if self._frozen:
            raise RuntimeError("Channel registry is frozen")
        channel_id = normalize_channel_id(adapter.id)
        if not channel_id:
            raise ValueError(f"Invalid channel id: {adapter.id!r}")
        if channel_id in self._adapters:
            raise ValueError(f"Channel already registered: {channel_id}")
        self._adapters[channel_id] = adapter
        for alias in adapter.aliases:
            key = (alias or "").strip().lower()
            if key:
                self._aliases[key] = channel_id
        log.debug("Registered channel %s", channel_id)

    def _lookup_id(self, channel: str | None) -> str | None:
        key = (channel or "").strip().lower()
        if key in self._aliases:
            return self._aliases[key]
        return normalize_channel_id(channel)

    def get(self, channel: str | None) -> ChannelOutboundAdapter | None:
        channel_id = self._lookup_id(channel)
        if not channel_id:
            return None
        return self._adapters.get(channel_id)

    def require(self, channel: str) -> ChannelOutboundAdapter:
        adapter = self.get(channel)
        if adapter is None:
            raise UnknownChannelError(channel)
        return adapter

    def ids(self) -> list[str]:
        return list(self._adapters)

    def adapters(self) -> list[ChannelOutboundAdapter]:
        return list(self._adapters.values())

    def list_configured_channels(self, config: Mapping[str, Any] | None) -> list[str]:
        return [cid for cid, adapter in self._adapters.items() if adapter.is_configured(config)]

    def resolve_channel(
        self,
        config: Mapping[str, Any] | None,
        channel: str | None = None,
    ) -> ChannelSelection:
        configured = self.list_configured_channels(config)
        requested = (channel or "").strip()
        if requested:
            channel_id = self._lookup_id(requested)
            adapter = self._adapters.get(channel_id) if channel_id else None
            if adapter is None:
                raise UnknownChannelError(requested)
            return ChannelSelection(channel=channel_id, adapter=adapter, configured=configured)

        if len(configured) == 1:
            channel_id = configured[0]
            return ChannelSelection(
                channel=channel_id,
                adapter=self._adapters[channel_id],
                configured=configured,
            )
        raise ChannelRequiredError(configured)
