from __future__ import annotations

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from agentrelay.blocks import text_block
from agentrelay.channels import (
    ChannelDelivery,
    ChannelOutboundAdapter,
    ChannelRegistry,
    ChannelTarget,
    DeliveryMode,
    DeliveryResult,
    WebhookOutbound,
    XmppOutbound,
    build_registry,
    chunk_text,
    normalize_channel_id,
)
from agentrelay.channels.chunk import mark_part
from agentrelay.errors import (
    ChannelHTTPError,
    ChannelRequiredError,
    DeliveryTargetError,
    UnknownChannelError,
)


class FakeAdapter(ChannelOutboundAdapter):
    label = "Fake"

    def __init__(self, channel_id: str, **kwargs):
        super().__init__(**kwargs)
        self.id = channel_id
        self.chunks: list[tuple[str, int, int]] = []
        self.media: list[tuple[str, str]] = []

    def is_configured(self, config):
        return bool((config or {}).get("channels", {}).get(self.id))

    def resolve_target(self, to, *, account_id=None, reply_to_id=None):
        return ChannelTarget(self.id, self._require_to(to, "<id>"), account_id, reply_to_id)

    async def send_chunk(self, target, text, index, total):
        self.chunks.append((text, index, total))
        return f"m{index}"

    async def send_media(self, target, text, media_url):
        self.media.append((text, media_url))
        return DeliveryResult(channel=self.id, message_ids=[media_url], chunks=1)


class FakeXmppClient:
    def __init__(self):
        self.calls: list[tuple] = []

    def send_chat(self, to, body, *, chat_state="active"):
        self.calls.append(("chat", to, body, chat_state))
        return f"id{len(self.calls)}"

    def send_media(self, to, url, caption=""):
        self.calls.append(("media", to, url, caption))
        return f"id{len(self.calls)}"

    def send_typing(self, to):
        self.calls.append(("typing", to))


# -----------------
# Chunking
# -----------------


def test_chunk_text_packs_paragraphs_and_hard_wraps_long_lines():
    assert chunk_text("short", 10) == ["short"]
    assert chunk_text("aaaa\n\nbbbb\n\ncccc", 10) == ["aaaa\n\nbbbb", "cccc"]
    assert chunk_text("x" * 25, 10) == ["x" * 10, "x" * 10, "x" * 5]
    assert chunk_text("", 10) == []


def test_mark_part_adds_markers_only_for_multipart():
    assert mark_part("solo", 1, 1) == "solo"
    assert mark_part("a", 1, 2) == "a\n[1/2]"
    assert mark_part("b", 2, 2) == "[2/2]\nb"


@pytest.mark.asyncio
async def test_send_text_chunking_can_be_disabled_or_overridden():
    unchunked = FakeAdapter("fake", text_chunk_limit=5, chunker=None)
    await unchunked.send_text(unchunked.resolve_target("u"), "0123456789")
    assert unchunked.chunks == [("0123456789", 1, 1)]

    custom = FakeAdapter("fake", text_chunk_limit=4, chunker=lambda text, limit: list(text[::limit]))
    result = await custom.send_text(custom.resolve_target("u"), "abcdefgh")
    assert [c[0] for c in custom.chunks] == ["a", "e"]
    assert result.chunks == 2
    assert result.message_ids == ["m1", "m2"]


# -----------------
# Registry
# -----------------


def _registry(*ids: str) -> ChannelRegistry:
    return ChannelRegistry([FakeAdapter(cid) for cid in ids])


def _config(*configured: str) -> dict:
    return {"channels": {cid: {"enabled": True} for cid in configured}}


def test_resolve_channel_requires_a_channel_when_none_configured():
    with pytest.raises(ChannelRequiredError) as excinfo:
        _registry("alpha", "beta").resolve_channel(_config())
    assert str(excinfo.value) == "Channel is required (no configured channels detected)."


def test_resolve_channel_auto_selects_single_configured():
    selection = _registry("alpha", "beta").resolve_channel(_config("beta"))
    assert selection.channel == "beta"
    assert selection.configured == ["beta"]


def test_resolve_channel_names_every_configured_channel():
    with pytest.raises(ChannelRequiredError) as excinfo:
        _registry("alpha", "beta").resolve_channel(_config("alpha", "beta"))
    assert str(excinfo.value) == "Channel is required when multiple channels are configured: alpha, beta"
    assert excinfo.value.configured == ["alpha", "beta"]


def test_resolve_channel_rejects_unknown_explicit_channel():
    with pytest.raises(UnknownChannelError, match="Unknown channel: gamma"):
        _registry("alpha").resolve_channel(_config("alpha"), "gamma")


def test_explicit_channel_wins_even_when_unconfigured():
    selection = _registry("alpha", "beta").resolve_channel(_config("alpha"), " BETA ")
    assert selection.channel == "beta"


def test_aliases_and_frozen_registry():
    registry = build_registry({})
    assert registry.frozen
    assert registry.require("jabber").id == "xmpp"
    assert registry.get("http").id == "webhook"
    assert registry.ids() == ["xmpp", "webhook"]
    assert normalize_channel_id(" Jabber ") == "xmpp"
    assert normalize_channel_id("bad id") is None
    with pytest.raises(RuntimeError):
        registry.register(FakeAdapter("late"))


def test_duplicate_registration_is_rejected():
    registry = _registry("alpha")
    with pytest.raises(ValueError):
        registry.register(FakeAdapter("alpha"))


def test_builtin_adapters_report_configuration():
    config = {"channels": {"xmpp": {"jid": "bot@example.com", "password": "pw"}, "webhook": {"url": ""}}}
    assert build_registry(config).list_configured_channels(config) == ["xmpp"]


# -----------------
# ChannelDelivery
# -----------------


@pytest.mark.asyncio
async def test_delivery_sends_media_with_caption_on_first_item():
    adapter = FakeAdapter("fake")
    delivery = ChannelDelivery(adapter, "user-1")
    block = text_block("caption", media_urls=("u1", "u2"))
    result = await delivery.deliver(block)
    assert adapter.media == [("caption", "u1"), ("", "u2")]
    assert result.message_ids == ["u1", "u2"]
    assert adapter.chunks == []


@pytest.mark.asyncio
async def test_delivery_without_destination_raises_target_error():
    delivery = ChannelDelivery(WebhookOutbound("http://unused"), "  ")
    with pytest.raises(DeliveryTargetError, match="Delivering to webhook requires --to <destination>"):
        await delivery.deliver(text_block("hi"))


# -----------------
# XMPP
# -----------------


def test_xmpp_resolve_target_validates_jid():
    adapter = XmppOutbound(FakeXmppClient())
    target = adapter.resolve_target("xmpp:alice@example.com/phone")
    assert target.to == "alice@example.com/phone"
    assert target.channel == "xmpp"
    with pytest.raises(DeliveryTargetError, match="requires --to <user@host>"):
        adapter.resolve_target(None)
    with pytest.raises(DeliveryTargetError, match="Invalid XMPP address"):
        adapter.resolve_target("example.com")


@pytest.mark.asyncio
async def test_xmpp_chunks_carry_part_markers_and_chat_states():
    client = FakeXmppClient()
    adapter = XmppOutbound(client, text_chunk_limit=10)
    assert adapter.delivery_mode is DeliveryMode.QUEUED

    result = await adapter.send_text(adapter.resolve_target("bob@example.com"), "aaaa\n\nbbbb\n\ncccc")
    assert client.calls == [
        ("chat", "bob@example.com", "aaaa\n\nbbbb\n[1/2]", "composing"),
        ("chat", "bob@example.com", "[2/2]\ncccc", "active"),
    ]
    assert result.message_ids == ["id1", "id2"]


@pytest.mark.asyncio
async def test_xmpp_typing_and_media():
    client = FakeXmppClient()
    delivery = ChannelDelivery(XmppOutbound(client), "bob@example.com")
    await delivery.send_typing()
    await delivery.deliver(text_block("look", media_urls=("https://x/a.png",)))
    assert client.calls == [
        ("typing", "bob@example.com"),
        ("media", "bob@example.com", "https://x/a.png", "look"),
    ]


# -----------------
# Webhook
# -----------------


@pytest_asyncio.fixture
async def webhook_server():
    received: list[dict] = []
    headers: list[str | None] = []

    async def handler(request: web.Request) -> web.Response:
        payload = await request.json()
        if payload.get("text") == "explode":
            return web.Response(status=500, text="kaput")
        received.append(payload)
        headers.append(request.headers.get("Authorization"))
        return web.json_response({"message_id": len(received)})

    app = web.Application()
    app.router.add_post("/hook", handler)
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/hook")), received, headers
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_webhook_posts_chunks_with_bearer_token(webhook_server):
    url, received, headers = webhook_server
    adapter = WebhookOutbound(url, token="s3cret", text_chunk_limit=10)
    try:
        target = adapter.resolve_target("room-7", reply_to_id="r1")
        result = await adapter.send_text(target, "aaaa\n\nbbbb\n\ncccc")
    finally:
        await adapter.close()

    assert [p["text"] for p in received] == ["aaaa\n\nbbbb", "cccc"]
    assert received[0]["to"] == "room-7"
    assert received[0]["reply_to_id"] == "r1"
    assert received[0]["part"] == 1 and received[0]["parts"] == 2
    assert headers == ["Bearer s3cret", "Bearer s3cret"]
    assert result.message_ids == ["1", "2"]


@pytest.mark.asyncio
async def test_webhook_typing_only_when_enabled(webhook_server):
    url, received, _ = webhook_server
    quiet = WebhookOutbound(url)
    chatty = WebhookOutbound(url, typing=True)
    try:
        await ChannelDelivery(quiet, "room").send_typing()
        await ChannelDelivery(chatty, "room").send_typing()
    finally:
        await quiet.close()
        await chatty.close()
    assert received == [{"channel": "webhook", "to": "room", "type": "typing"}]


@pytest.mark.asyncio
async def test_webhook_http_error_is_raised(webhook_server):
    url, _, _ = webhook_server
    adapter = WebhookOutbound(url)
    try:
        with pytest.raises(ChannelHTTPError) as excinfo:
            await adapter.send_text(adapter.resolve_target("room"), "explode")
    finally:
        await adapter.close()
    assert excinfo.value.status == 500
    assert "kaput" in str(excinfo.value)
