"""Relay exceptions.

Process-level outcomes (timeouts, non-zero exits) are normally reported as
data on `RunResult`; these types exist so callers can format failures
consistently without scraping strings.
"""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base class for relay errors."""


class ProcessSpawnError(RelayError):
    """The agent CLI could not be started at all."""

    def __init__(self, provider: str, command: str | None = None, *, detail: str | None = None):
        self.provider = provider
        self.command = command
        self.detail = detail
        super().__init__(self.__str__())

    def __str__(self) -> str:
        base = f"Failed to spawn agent for provider {self.provider!r}"
        if self.command:
            base += f" ({self.command})"
        detail = (self.detail or "").strip()
        if detail:
            return f"{base}: {detail}"
        return base


class ProcessTimeoutError(RelayError):
    """The agent process outlived its deadline and was terminated."""

    def __init__(self, timeout_ms: int, *, run_id: str | None = None):
        self.timeout_ms = int(timeout_ms)
        self.run_id = run_id
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.run_id:
            return f"Agent run {self.run_id} timed out after {self.timeout_ms}ms"
        return f"Agent run timed out after {self.timeout_ms}ms"


class ProcessExitError(RelayError):
    """The agent process exited unsuccessfully."""

    def __init__(self, code: int | None, *, signal: str | None = None, stderr: str | None = None):
        self.code = code
        self.signal = signal
        self.stderr = stderr
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.signal:
            base = f"Agent process killed by {self.signal}"
        else:
            base = f"Agent process exited with code {self.code}"
        tail = (self.stderr or "").strip()
        if tail:
            return f"{base}: {tail[-300:]}"
        return base


class StaleProcessCleanupFailure(RelayError):
    """Best-effort stale process cleanup failed. Logged, never propagated."""


class ChannelResolutionError(RelayError):
    """Base class for channel selection failures."""


class UnknownChannelError(ChannelResolutionError):
    def __init__(self, channel: str):
        self.channel = channel
        super().__init__(f"Unknown channel: {channel}")


class ChannelRequiredError(ChannelResolutionError):
    def __init__(self, configured: list[str]):
        self.configured = list(configured)
        if not self.configured:
            message = "Channel is required (no configured channels detected)."
        else:
            message = (
                "Channel is required when multiple channels are configured: "
                + ", ".join(self.configured)
            )
        super().__init__(message)


class DeliveryTargetError(RelayError):
    """A raw destination could not be resolved for a channel."""

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(message)


class DispatchGuardFlushError(RelayError):
    """Placeholder: synthesizing missing tool results never fails."""


class ChannelHTTPError(RelayError):
    """HTTP error from a channel endpoint."""

    def __init__(
        self,
        status: int,
        *,
        method: str,
        url: str,
        detail: str | None = None,
    ):
        self.status = int(status)
        self.method = method
        self.url = url
        self.detail = detail
        super().__init__(self.__str__())

    def __str__(self) -> str:
        detail = (self.detail or "").strip()
        if detail:
            return f"Channel HTTP {self.status} {self.method} {self.url}: {detail}"
        return f"Channel HTTP {self.status} {self.method} {self.url}"
