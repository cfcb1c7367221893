"""Per-conversation session entries and provider session tokens.

An entry maps normalized provider ids to that provider's own session token so
a later message in the same conversation can resume the agent's context.
Token maps are replaced, never mutated in place, so a reader holding the old
mapping never observes a partial update.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Mapping, Protocol

from agentrelay.providers import normalize_provider_id

log = logging.getLogger("sessions")


@dataclass
class SessionEntry:
    session_key: str
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    sdk_session_ids: Mapping[str, str] = field(default_factory=dict)
    cli_session_id: str | None = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    updated_at: str = field(default_factory=lambda: datetime.now().isoformat())


def get_session_token(entry: SessionEntry | None, provider: str) -> str | None:
    key = normalize_provider_id(provider)
    if not key or entry is None:
        return None
    value = (entry.sdk_session_ids or {}).get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def set_session_token(entry: SessionEntry, provider: str, token: str | None) -> None:
    """Record a provider token; empty provider or blank token is a no-op."""
    key = normalize_provider_id(provider)
    if not key:
        return
    trimmed = token.strip() if isinstance(token, str) else ""
    if not trimmed:
        return
    entry.sdk_session_ids = {**(entry.sdk_session_ids or {}), key: trimmed}
    entry.updated_at = datetime.now().isoformat()


class SessionRepositoryPort(Protocol):
    def get(self, session_key: str) -> SessionEntry | None: ...

    def upsert(self, entry: SessionEntry) -> None: ...


class SessionStore:
    """In-memory view of session entries, optionally backed by a repository.

    Entries are swapped whole on save; a conversation has a single writer at a
    time (its lane), so no lock is needed.
    """

    def __init__(self, repository: SessionRepositoryPort | None = None):
        self._repository = repository
        self._entries: dict[str, SessionEntry] = {}

    def get(self, session_key: str) -> SessionEntry | None:
        entry = self._entries.get(session_key)
        if entry is None and self._repository is not None:
            entry = self._repository.get(session_key)
            if entry is not None:
                self._entries[session_key] = entry
        if entry is None:
            return None
        # Hand out a copy so callers mutate their own object until save().
        return replace(entry)

    def get_or_create(self, session_key: str) -> SessionEntry:
        entry = self.get(session_key)
        if entry is not None:
            return entry
        entry = SessionEntry(session_key=session_key)
        log.info("New session %s for %s", entry.session_id, session_key)
        self.save(entry)
        return replace(entry)

    def save(self, entry: SessionEntry) -> None:
        snapshot = replace(entry, sdk_session_ids=dict(entry.sdk_session_ids or {}))
        if self._repository is not None:
            self._repository.upsert(snapshot)
        self._entries[entry.session_key] = snapshot

    def keys(self) -> list[str]:
        return list(self._entries.keys())
