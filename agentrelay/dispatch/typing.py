"""Typing indicator keepalive.

Channels often clear a typing state after a few seconds. This helper keeps
refreshing it while a reply is still being produced.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable


class TypingIndicator:
    def __init__(
        self,
        *,
        send_typing: Callable[[], None],
        is_active: Callable[[], bool],
    ):
        self._send_typing = send_typing
        self._is_active = is_active

        self._task: asyncio.Task | None = None
        self._last_sent = 0.0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def maybe_send(self, *, min_interval_s: float = 5.0) -> None:
        now = time.monotonic()
        if now - self._last_sent < min_interval_s:
            return
        self._last_sent = now
        self._send_typing()

    async def _loop(self, *, interval_s: float) -> None:
        try:
            while self._is_active():
                self.maybe_send(min_interval_s=0.0)
                await asyncio.sleep(interval_s)
        except asyncio.CancelledError:
            return

    def start(self, *, interval_s: float = 15.0) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(interval_s=interval_s))

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
