"""Database initialization and the session repository."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from agentrelay.sessions import SessionEntry

log = logging.getLogger("db")

DB_PATH = Path(__file__).parent.parent / "sessions.db"


class SessionRepository:
    """Repository for sessions table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _row_to_entry(self, row: sqlite3.Row) -> SessionEntry:
        raw = row["sdk_session_ids"] or "{}"
        try:
            tokens = json.loads(raw)
        except json.JSONDecodeError:
            log.warning("Corrupt sdk_session_ids for %s; ignoring", row["session_key"])
            tokens = {}
        if not isinstance(tokens, dict):
            tokens = {}
        return SessionEntry(
            session_key=row["session_key"],
            session_id=row["session_id"],
            sdk_session_ids={
                str(k): v for k, v in tokens.items() if isinstance(v, str) and v.strip()
            },
            cli_session_id=row["cli_session_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get(self, session_key: str) -> SessionEntry | None:
        row = self.conn.execute(
            "SELECT * FROM sessions WHERE session_key = ?", (session_key,)
        ).fetchone()
        return self._row_to_entry(row) if row else None

    def list_recent(self, limit: int = 15) -> list[SessionEntry]:
        rows = self.conn.execute(
            "SELECT * FROM sessions ORDER BY updated_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def upsert(self, entry: SessionEntry) -> None:
        self.conn.execute(
            """INSERT INTO sessions
               (session_key, session_id, sdk_session_ids, cli_session_id, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(session_key) DO UPDATE SET
                   session_id = excluded.session_id,
                   sdk_session_ids = excluded.sdk_session_ids,
                   cli_session_id = excluded.cli_session_id,
                   updated_at = excluded.updated_at""",
            (
                entry.session_key,
                entry.session_id,
                json.dumps(dict(entry.sdk_session_ids or {}), sort_keys=True),
                entry.cli_session_id,
                entry.created_at,
                entry.updated_at,
            ),
        )
        self.conn.commit()

    def delete(self, session_key: str) -> None:
        self.conn.execute("DELETE FROM sessions WHERE session_key = ?", (session_key,))
        self.conn.commit()


def init_db(path: Path | str | None = None) -> sqlite3.Connection:
    """Initialize SQLite database with schema."""
    conn = sqlite3.connect(str(path or DB_PATH), check_same_thread=False)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA busy_timeout=5000")
    except sqlite3.OperationalError:
        # Best-effort; some environments may reject specific pragmas.
        pass

    conn.execute("""
        CREATE TABLE IF NOT EXISTS sessions (
            session_key TEXT PRIMARY KEY,
            session_id TEXT NOT NULL,
            sdk_session_ids TEXT NOT NULL DEFAULT '{}',
            cli_session_id TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_sessions_updated_at ON sessions(updated_at DESC)"
    )
    conn.commit()
    return conn
