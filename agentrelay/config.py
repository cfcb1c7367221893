"""Environment-driven configuration."""

from __future__ import annotations

import logging
import os
from pathlib import Path

_FALSE = ("0", "false", "False", "no", "off", "")


def load_env(env_path: Path | None = None) -> None:
    """Load .env file into os.environ. Handles quoted values and spaces."""
    if env_path is None:
        env_path = Path.cwd() / ".env"

    if not env_path.exists():
        return

    for line in env_path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, val = line.split("=", 1)
            val = val.strip().strip('"').strip("'")
            os.environ[key.strip()] = val


# =============================================================================
# Configuration (call load_env() before accessing these)
# =============================================================================


def _flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip() not in _FALSE


def _int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


def get_relay_config() -> dict:
    """Get relay configuration from environment."""
    output_dir = Path(os.getenv("RELAY_OUTPUT_DIR", str(Path.cwd() / "output")))
    return {
        "working_dir": os.getenv("RELAY_WORKING_DIR", str(Path.home())),
        "output_dir": str(output_dir),
        "db_path": os.getenv("RELAY_DB_PATH", str(output_dir / "sessions.db")),
        "default_provider": os.getenv("RELAY_DEFAULT_PROVIDER", "claude-cli"),
        "default_model": os.getenv("RELAY_DEFAULT_MODEL") or None,
        "timeout_ms": _int("RELAY_TIMEOUT_MS", 10 * 60 * 1000),
        "typing_interval_s": _float("RELAY_TYPING_INTERVAL_S", 15.0),
        "typing_mode": os.getenv("RELAY_TYPING_MODE", "message").strip().lower() or "message",
        "verbose": _flag("RELAY_VERBOSE"),
        "allow_from": _list("RELAY_ALLOW_FROM"),
        "channels": {
            "xmpp": {
                "jid": os.getenv("XMPP_JID", ""),
                "password": os.getenv("XMPP_PASSWORD", ""),
                "server": os.getenv("XMPP_SERVER", ""),
                "port": _int("XMPP_PORT", 5222),
                "tls": _flag("XMPP_TLS"),
                "text_chunk_limit": _int("XMPP_MESSAGE_MAX_LEN", None),
            },
            "webhook": {
                "url": os.getenv("RELAY_WEBHOOK_URL", ""),
                "token": os.getenv("RELAY_WEBHOOK_TOKEN") or None,
                "text_chunk_limit": _int("RELAY_WEBHOOK_MAX_LEN", None),
                "typing": _flag("RELAY_WEBHOOK_TYPING"),
            },
        },
    }


def configure_logging(verbose: bool = False) -> None:
    level_name = os.getenv("RELAY_LOG_LEVEL", "DEBUG" if verbose else "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # slixmpp is chatty at DEBUG.
    logging.getLogger("slixmpp").setLevel(max(level, logging.INFO))
