"""Provider registry and CLI backend definitions."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

PROVIDER_ALIASES = {
    "z.ai": "zai",
    "z-ai": "zai",
    "opencode-zen": "opencode",
    "claude-code": "claude-cli",
    "codex": "codex-cli",
}

_PROVIDER_ID_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*$")

SESSION_PLACEHOLDER = "{session_id}"


def normalize_provider_id(provider: str | None) -> str | None:
    """Return the canonical provider key, or None when unrecognized."""
    if not isinstance(provider, str):
        return None
    key = provider.strip().lower()
    if not key:
        return None
    key = PROVIDER_ALIASES.get(key, key)
    if not _PROVIDER_ID_RE.match(key):
        return None
    return key


@dataclass(frozen=True)
class CliBackend:
    """How to launch (and resume) one agent CLI."""

    provider: str
    command: str
    args: tuple[str, ...] = ()
    resume_args: tuple[str, ...] = ()
    model_arg: str | None = "--model"
    output: str = "jsonl"  # "jsonl" | "text"
    env: dict[str, str] = field(default_factory=dict)

    @property
    def command_name(self) -> str:
        return os.path.basename(self.command) or self.command

    def build_command(
        self,
        prompt: str,
        *,
        model: str | None = None,
        session_id: str | None = None,
    ) -> list[str]:
        """Build the argv for a fresh run, or a resume when session_id is set."""
        if session_id and self.resume_args:
            args = [a.replace(SESSION_PLACEHOLDER, session_id) for a in self.resume_args]
        else:
            args = list(self.args)

        cmd = [self.command, *args]
        if model and self.model_arg:
            cmd.extend([self.model_arg, model])
        cmd.append(prompt)
        return cmd


def _claude_backend() -> CliBackend:
    return CliBackend(
        provider="claude-cli",
        command=os.getenv("RELAY_CLAUDE_BIN", "claude"),
        args=(
            "-p",
            "--output-format", "stream-json",
            "--verbose",
            "--dangerously-skip-permissions",
        ),
        resume_args=(
            "-p",
            "--output-format", "stream-json",
            "--verbose",
            "--dangerously-skip-permissions",
            "--resume", SESSION_PLACEHOLDER,
        ),
    )


def _codex_backend() -> CliBackend:
    return CliBackend(
        provider="codex-cli",
        command=os.getenv("RELAY_CODEX_BIN", "codex"),
        args=(
            "exec",
            "--json",
            "--color", "never",
            "--sandbox", "read-only",
            "--skip-git-repo-check",
        ),
        resume_args=(
            "exec",
            "resume", SESSION_PLACEHOLDER,
            "--json",
            "--color", "never",
            "--sandbox", "read-only",
            "--skip-git-repo-check",
        ),
    )


def default_backends() -> dict[str, CliBackend]:
    # Built at call time so RELAY_*_BIN overrides loaded from .env apply.
    return {
        "claude-cli": _claude_backend(),
        "codex-cli": _codex_backend(),
    }


def resolve_cli_backend(
    provider: str,
    backends: dict[str, CliBackend] | None = None,
) -> CliBackend | None:
    key = normalize_provider_id(provider)
    if not key:
        return None
    table = backends if backends is not None else default_backends()
    return table.get(key)


def is_cli_provider(provider: str, backends: dict[str, CliBackend] | None = None) -> bool:
    return resolve_cli_backend(provider, backends) is not None
