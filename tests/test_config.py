from __future__ import annotations

import os

from agentrelay.config import get_relay_config, load_env


def test_load_env_handles_quotes_and_comments(tmp_path, monkeypatch):
    env = tmp_path / ".env"
    env.write_text(
        "# comment\n"
        'RELAY_DEFAULT_PROVIDER="codex"\n'
        "RELAY_TIMEOUT_MS = 1500\n"
        "RELAY_ALLOW_FROM='a@b, webhook:room'\n"
    )
    for key in ("RELAY_DEFAULT_PROVIDER", "RELAY_TIMEOUT_MS", "RELAY_ALLOW_FROM"):
        monkeypatch.delenv(key, raising=False)

    load_env(env)
    try:
        assert os.environ["RELAY_DEFAULT_PROVIDER"] == "codex"
        cfg = get_relay_config()
        assert cfg["default_provider"] == "codex"
        assert cfg["timeout_ms"] == 1500
        assert cfg["allow_from"] == ["a@b", "webhook:room"]
    finally:
        for key in ("RELAY_DEFAULT_PROVIDER", "RELAY_TIMEOUT_MS", "RELAY_ALLOW_FROM"):
            os.environ.pop(key, None)


def test_missing_env_file_is_ignored(tmp_path):
    load_env(tmp_path / "absent.env")


def test_channel_sections_and_fallbacks(monkeypatch, tmp_path):
    monkeypatch.setenv("RELAY_OUTPUT_DIR", str(tmp_path))
    monkeypatch.setenv("RELAY_TIMEOUT_MS", "soon")
    monkeypatch.setenv("RELAY_VERBOSE", "false")
    monkeypatch.setenv("XMPP_JID", "bot@example.com")
    monkeypatch.setenv("XMPP_PASSWORD", "pw")
    monkeypatch.setenv("RELAY_WEBHOOK_URL", "http://localhost:9/hook")
    monkeypatch.setenv("RELAY_WEBHOOK_TYPING", "1")
    monkeypatch.delenv("RELAY_DB_PATH", raising=False)

    cfg = get_relay_config()
    assert cfg["timeout_ms"] == 10 * 60 * 1000
    assert cfg["verbose"] is False
    assert cfg["db_path"] == str(tmp_path / "sessions.db")
    assert cfg["channels"]["xmpp"]["jid"] == "bot@example.com"
    assert cfg["channels"]["xmpp"]["port"] == 5222
    assert cfg["channels"]["webhook"]["url"] == "http://localhost:9/hook"
    assert cfg["channels"]["webhook"]["typing"] is True


def test_typing_mode_defaults_to_message(monkeypatch):
    monkeypatch.delenv("RELAY_TYPING_MODE", raising=False)
    assert get_relay_config()["typing_mode"] == "message"

    monkeypatch.setenv("RELAY_TYPING_MODE", " Instant ")
    assert get_relay_config()["typing_mode"] == "instant"
