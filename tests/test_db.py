from __future__ import annotations

from agentrelay.db import SessionRepository, init_db
from agentrelay.sessions import SessionEntry


def test_upsert_updates_existing_row_and_lists_recent():
    conn = init_db(":memory:")
    try:
        repo = SessionRepository(conn)
        repo.upsert(SessionEntry(session_key="a", updated_at="2026-01-01T00:00:00"))
        repo.upsert(SessionEntry(session_key="b", updated_at="2026-01-02T00:00:00"))
        repo.upsert(
            SessionEntry(
                session_key="a",
                session_id="fixed",
                sdk_session_ids={"claude": "tok"},
                updated_at="2026-01-03T00:00:00",
            )
        )

        recent = repo.list_recent()
        assert [e.session_key for e in recent] == ["a", "b"]
        assert recent[0].session_id == "fixed"
        assert recent[0].sdk_session_ids == {"claude": "tok"}
    finally:
        conn.close()


def test_corrupt_token_column_reads_as_empty_and_delete_removes_row():
    conn = init_db(":memory:")
    try:
        repo = SessionRepository(conn)
        repo.upsert(SessionEntry(session_key="a"))
        conn.execute("UPDATE sessions SET sdk_session_ids = 'not json' WHERE session_key = 'a'")
        assert repo.get("a").sdk_session_ids == {}

        repo.delete("a")
        assert repo.get("a") is None
    finally:
        conn.close()
