"""Webhook outbound channel.

Posts each message as JSON to a configured URL. Delivery is `direct`: a send
completes when the endpoint has acknowledged the request.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

import aiohttp

from agentrelay.channels.base import (
    ChannelOutboundAdapter,
    ChannelTarget,
    DeliveryMode,
    DeliveryResult,
    channel_config,
)
from agentrelay.errors import ChannelHTTPError, RelayError

log = logging.getLogger("channels.webhook")


class WebhookOutbound(ChannelOutboundAdapter):
    id = "webhook"
    label = "webhook"
    aliases = ("http",)
    delivery_mode = DeliveryMode.DIRECT
    default_chunk_limit = 4000

    def __init__(
        self,
        url: str | None = None,
        *,
        token: str | None = None,
        typing: bool = False,
        session: aiohttp.ClientSession | None = None,
        timeout_s: float = 30.0,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.url = (url or "").strip() or None
        self.token = token
        self.supports_typing = bool(typing)
        self.timeout_s = timeout_s
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> "WebhookOutbound":
        section = channel_config(config, "webhook")
        limit = section.get("text_chunk_limit")
        return cls(
            section.get("url"),
            token=section.get("token"),
            typing=bool(section.get("typing")),
            text_chunk_limit=int(limit) if limit else None,
        )

    def is_configured(self, config: Mapping[str, Any] | None) -> bool:
        return bool(channel_config(config, "webhook").get("url"))

    def resolve_target(
        self,
        to: str | None,
        *,
        account_id: str | None = None,
        reply_to_id: str | None = None,
    ) -> ChannelTarget:
        raw = self._require_to(to, "<destination>")
        return ChannelTarget(
            channel=self.id,
            to=raw,
            account_id=account_id,
            reply_to_id=reply_to_id,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_s)
            )
            self._owns_session = True
        return self._session

    async def post(self, payload: dict[str, object]) -> object | None:
        if not self.url:
            raise RelayError("Webhook channel has no URL configured")
        session = await self._get_session()
        async with session.post(self.url, json=payload, headers=self._headers()) as resp:
            text = await resp.text()
            if resp.status >= 400:
                raise ChannelHTTPError(
                    resp.status,
                    method="POST",
                    url=self.url,
                    detail=text.strip() or resp.reason,
                )
            if resp.status == 204 or not text:
                return None
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return text

    def _payload(self, target: ChannelTarget, **fields: object) -> dict[str, object]:
        payload: dict[str, object] = {"channel": self.id, "to": target.to}
        if target.account_id:
            payload["account_id"] = target.account_id
        if target.reply_to_id:
            payload["reply_to_id"] = target.reply_to_id
        payload.update(fields)
        return payload

    @staticmethod
    def _message_id(response: object | None) -> str | None:
        if isinstance(response, dict):
            value = response.get("message_id") or response.get("id")
            if value is not None:
                return str(value)
        return None

    async def send_chunk(self, target: ChannelTarget, text: str, index: int, total: int) -> str | None:
        payload = self._payload(target, type="message", text=text)
        if total > 1:
            payload["part"] = index
            payload["parts"] = total
        return self._message_id(await self.post(payload))

    async def send_media(self, target: ChannelTarget, text: str, media_url: str) -> DeliveryResult:
        response = await self.post(self._payload(target, type="message", text=text, media_url=media_url))
        message_id = self._message_id(response)
        return DeliveryResult(channel=self.id, message_ids=[message_id] if message_id else [], chunks=1)

    async def send_typing(self, target: ChannelTarget) -> None:
        if not self.supports_typing:
            return
        await self.post(self._payload(target, type="typing"))

    async def close(self) -> None:
        session = self._session
        self._session = None
        if session is not None and self._owns_session and not session.closed:
            await session.close()
