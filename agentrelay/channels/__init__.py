"""Outbound channels."""

from __future__ import annotations

from typing import Any, Mapping

from agentrelay.channels.base import (
    ChannelDelivery,
    ChannelOutboundAdapter,
    ChannelTarget,
    DeliveryMode,
    DeliveryResult,
)
from agentrelay.channels.chunk import chunk_text
from agentrelay.channels.registry import (
    CHANNEL_ALIASES,
    ChannelRegistry,
    ChannelSelection,
    normalize_channel_id,
)
from agentrelay.channels.webhook import WebhookOutbound
from agentrelay.channels.xmpp import XmppOutbound


def build_registry(config: Mapping[str, Any] | None) -> ChannelRegistry:
    """Registry with every built-in adapter, frozen."""
    registry = ChannelRegistry(
        [
            XmppOutbound.from_config(config),
            WebhookOutbound.from_config(config),
        ]
    )
    registry.freeze()
    return registry


__all__ = [
    "CHANNEL_ALIASES",
    "ChannelDelivery",
    "ChannelOutboundAdapter",
    "ChannelRegistry",
    "ChannelSelection",
    "ChannelTarget",
    "DeliveryMode",
    "DeliveryResult",
    "WebhookOutbound",
    "XmppOutbound",
    "build_registry",
    "chunk_text",
    "normalize_channel_id",
]
