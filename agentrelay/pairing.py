"""Pairing gate: decides whether a sender may trigger an agent run.

Unknown senders get a short pairing code; the operator approves the code out
of band and the sender is allowed from then on.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from agentrelay.channels.registry import normalize_channel_id

log = logging.getLogger("pairing")

PAIRING_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PAIRING_CODE_LENGTH = 8


@dataclass(frozen=True)
class PairingDecision:
    allowed: bool
    pairing_code: str | None = None
    instructions: str | None = None


class PairingGate(Protocol):
    def check(self, sender: str, channel: str) -> PairingDecision: ...


class AllowAllGate:
    def check(self, sender: str, channel: str) -> PairingDecision:
        return PairingDecision(allowed=True)


def generate_pairing_code(length: int = PAIRING_CODE_LENGTH) -> str:
    return "".join(secrets.choice(PAIRING_CODE_ALPHABET) for _ in range(length))


def build_pairing_reply(channel: str, id_line: str, code: str) -> str:
    return "\n".join(
        [
            "agentrelay: access not configured.",
            "",
            id_line,
            "",
            f"Pairing code: {code}",
            "",
            f"Ask the bot owner to approve this code for {channel}.",
        ]
    )


@dataclass
class PairingRequest:
    channel: str
    sender: str
    code: str
    created_at: float = field(default_factory=time.time)


class AllowlistPairingGate:
    """Allow listed senders; issue pairing codes to everyone else.

    `allow_from` entries are either a bare sender id (any channel), a
    `channel:sender` pair, or `*`.
    """

    def __init__(
        self,
        allow_from: Iterable[str] = (),
        *,
        id_label: str = "sender id",
        code_ttl_s: float = 3600.0,
    ):
        self.id_label = id_label
        self.code_ttl_s = code_ttl_s
        self._allow_any = False
        self._allowed: set[tuple[str | None, str]] = set()
        self._pending: dict[tuple[str, str], PairingRequest] = {}
        for entry in allow_from:
            self.allow(entry)

    def allow(self, entry: str, channel: str | None = None) -> None:
        value = (entry or "").strip()
        if not value:
            return
        if value == "*":
            self._allow_any = True
            return
        if channel is None and ":" in value:
            prefix, rest = value.split(":", 1)
            normalized = normalize_channel_id(prefix)
            if normalized and rest.strip():
                channel, value = normalized, rest.strip()
        self._allowed.add((channel, value.lower()))

    def is_allowed(self, sender: str, channel: str) -> bool:
        if self._allow_any:
            return True
        key = (sender or "").strip().lower()
        return (None, key) in self._allowed or (channel, key) in self._allowed

    def _expired(self, request: PairingRequest) -> bool:
        return time.time() - request.created_at > self.code_ttl_s

    def _new_code(self) -> str:
        in_use = {r.code for r in self._pending.values()}
        while True:
            code = generate_pairing_code()
            if code not in in_use:
                return code

    def check(self, sender: str, channel: str) -> PairingDecision:
        channel_id = normalize_channel_id(channel) or channel
        sender = (sender or "").strip()
        if self.is_allowed(sender, channel_id):
            return PairingDecision(allowed=True)

        key = (channel_id, sender.lower())
        request = self._pending.get(key)
        if request is None or self._expired(request):
            request = PairingRequest(channel=channel_id, sender=sender, code=self._new_code())
            self._pending[key] = request
            log.info("Pairing requested by %s on %s (code %s)", sender, channel_id, request.code)

        return PairingDecision(
            allowed=False,
            pairing_code=request.code,
            instructions=build_pairing_reply(
                channel_id,
                f"Your {self.id_label}: {sender}",
                request.code,
            ),
        )

    def pending(self) -> list[PairingRequest]:
        return [r for r in self._pending.values() if not self._expired(r)]

    def approve(self, channel: str, code: str) -> str | None:
        """Approve a pending code. Returns the paired sender, or None."""
        channel_id = normalize_channel_id(channel) or channel
        wanted = (code or "").strip().upper()
        for key, request in list(self._pending.items()):
            if request.channel != channel_id or request.code != wanted:
                continue
            del self._pending[key]
            if self._expired(request):
                return None
            self._allowed.add((channel_id, request.sender.lower()))
            log.info("Approved %s on %s", request.sender, channel_id)
            return request.sender
        return None
