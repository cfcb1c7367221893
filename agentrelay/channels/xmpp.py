"""XMPP outbound channel.

Messages are handed to slixmpp's send queue, so delivery is `queued`: a send
returns as soon as the stanza is queued on the stream.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Mapping, Protocol

from slixmpp import JID, ClientXMPP
from slixmpp.jid import InvalidJID

from agentrelay.channels.base import (
    ChannelOutboundAdapter,
    ChannelTarget,
    DeliveryMode,
    DeliveryResult,
    channel_config,
)
from agentrelay.channels.chunk import mark_part
from agentrelay.errors import DeliveryTargetError, RelayError

log = logging.getLogger("channels.xmpp")


class XmppClient(ClientXMPP):
    """Minimal outbound client: presence, chat states and out-of-band media."""

    def __init__(self, jid: str, password: str):
        super().__init__(jid, password)
        self._connected_event = asyncio.Event()

        self.register_plugin("xep_0199")  # Ping
        self.register_plugin("xep_0085")  # Chat State Notifications
        self.register_plugin("xep_0066")  # Out of Band Data

        self.add_event_handler("session_start", self._on_start)
        self.add_event_handler("disconnected", self._on_disconnected)

    async def _on_start(self, event) -> None:
        self.send_presence()
        await self.get_roster()
        self._connected_event.set()
        log.info("Connected as %s", self.boundjid.bare)

    def _on_disconnected(self, event) -> None:
        self._connected_event.clear()
        log.warning("Disconnected")

    def connect_to_server(self, server: str, port: int = 5222, *, tls: bool = False) -> None:
        if not tls:
            self["feature_mechanisms"].unencrypted_plain = True  # type: ignore[attr-defined]
            self.enable_starttls = False
            self.enable_direct_tls = False
            self.enable_plaintext = True
        # slixmpp.ClientXMPP.connect expects a single address tuple.
        self.connect((server, port))  # type: ignore[arg-type]

    def is_connected(self) -> bool:
        return self._connected_event.is_set()

    async def wait_connected(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def send_chat(self, to: str, body: str, *, chat_state: str = "active") -> str:
        msg = self.make_message(mto=to, mbody=body, mtype="chat")
        msg["id"] = self.new_id()
        msg["chat_state"] = chat_state
        msg.send()
        return msg["id"]

    def send_media(self, to: str, url: str, caption: str = "") -> str:
        msg = self.make_message(mto=to, mbody=caption or url, mtype="chat")
        msg["id"] = self.new_id()
        msg["oob"]["url"] = url
        if caption:
            msg["oob"]["desc"] = caption
        msg["chat_state"] = "active"
        msg.send()
        return msg["id"]

    def send_typing(self, to: str) -> None:
        msg = self.make_message(mto=to, mtype="chat")
        msg["chat_state"] = "composing"
        msg.send()


class XmppSender(Protocol):
    def send_chat(self, to: str, body: str, *, chat_state: str = "active") -> str: ...

    def send_media(self, to: str, url: str, caption: str = "") -> str: ...

    def send_typing(self, to: str) -> None: ...


class XmppOutbound(ChannelOutboundAdapter):
    id = "xmpp"
    label = "XMPP"
    aliases = ("jabber",)
    delivery_mode = DeliveryMode.QUEUED
    supports_typing = True
    default_chunk_limit = 3500

    def __init__(
        self,
        client: XmppSender | None = None,
        *,
        settings: Mapping[str, Any] | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.client = client
        self.settings = dict(settings or {})

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> "XmppOutbound":
        section = channel_config(config, "xmpp")
        limit = section.get("text_chunk_limit")
        return cls(settings=section, text_chunk_limit=int(limit) if limit else None)

    def is_configured(self, config: Mapping[str, Any] | None) -> bool:
        section = channel_config(config, "xmpp")
        return bool(section.get("jid") and section.get("password"))

    async def connect(self, *, timeout: float = 30.0) -> None:
        if self.client is not None:
            return
        jid = self.settings.get("jid")
        password = self.settings.get("password")
        if not jid or not password:
            raise RelayError("XMPP channel is not configured")
        client = XmppClient(jid, password)
        server = self.settings.get("server") or JID(jid).domain
        port = int(self.settings.get("port") or 5222)
        client.connect_to_server(server, port, tls=bool(self.settings.get("tls")))
        if not await client.wait_connected(timeout):
            client.disconnect()
            raise RelayError(f"XMPP connection to {server}:{port} timed out")
        self.client = client

    def _require_client(self) -> XmppSender:
        if self.client is None:
            raise RelayError("XMPP channel is not connected")
        return self.client

    def resolve_target(
        self,
        to: str | None,
        *,
        account_id: str | None = None,
        reply_to_id: str | None = None,
    ) -> ChannelTarget:
        raw = self._require_to(to, "<user@host>")
        if raw.lower().startswith("xmpp:"):
            raw = raw[5:]
        try:
            jid = JID(raw)
        except InvalidJID as exc:
            raise DeliveryTargetError(self.id, f"Invalid XMPP address: {raw}") from exc
        if not jid.user or not jid.domain:
            raise DeliveryTargetError(self.id, f"Invalid XMPP address: {raw}")
        return ChannelTarget(
            channel=self.id,
            to=jid.full,
            account_id=account_id,
            reply_to_id=reply_to_id,
        )

    async def send_chunk(self, target: ChannelTarget, text: str, index: int, total: int) -> str | None:
        client = self._require_client()
        body = mark_part(text.rstrip("\r\n"), index, total)
        chat_state = "active" if index == total else "composing"
        return client.send_chat(target.to, body, chat_state=chat_state)

    async def send_media(self, target: ChannelTarget, text: str, media_url: str) -> DeliveryResult:
        client = self._require_client()
        message_id = client.send_media(target.to, media_url, text)
        return DeliveryResult(channel=self.id, message_ids=[message_id] if message_id else [], chunks=1)

    async def send_typing(self, target: ChannelTarget) -> None:
        client = self._require_client()
        client.send_typing(target.to)

    async def close(self) -> None:
        client = self.client
        self.client = None
        if not isinstance(client, XmppClient):
            return
        # Newer slixmpp returns a future that resolves once queued stanzas are flushed.
        waiter = client.disconnect()
        if inspect.isawaitable(waiter):
            try:
                await asyncio.wait_for(waiter, timeout=5.0)
            except asyncio.TimeoutError:
                log.warning("XMPP disconnect timed out")
