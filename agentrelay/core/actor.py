"""Per-conversation serialization.

Each conversation gets an actor: an `asyncio.Queue` plus one worker task that
runs queued jobs one at a time. Different conversations run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

log = logging.getLogger("lanes")

JobFactory = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class QueuedJob:
    generation: int
    factory: JobFactory
    done: asyncio.Future
    enqueued_at: float = field(default_factory=time.monotonic)


class ConversationActor:
    def __init__(self, key: str):
        self.key = key
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._queue: asyncio.Queue[QueuedJob] = asyncio.Queue()
        self._shutting_down = False

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def ensure_running(self) -> None:
        if self._shutting_down:
            return
        if self.busy:
            return
        self._task = asyncio.create_task(self._loop())

    def pending_count(self) -> int:
        return self._queue.qsize()

    async def submit(self, factory: JobFactory) -> Any:
        """Queue a job and wait for its result."""
        if self._shutting_down:
            raise RuntimeError(f"Conversation {self.key} is shutting down")
        done: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(QueuedJob(generation=self._generation, factory=factory, done=done))
        self.ensure_running()
        return await done

    def cancel_queued(self) -> bool:
        """Drop queued jobs; the one already running is left alone."""
        self._generation += 1
        dropped_any = False
        while not self._queue.empty():
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            dropped_any = True
            if not item.done.done():
                item.done.cancel()
        return dropped_any

    def shutdown(self) -> None:
        self._shutting_down = True
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
        self.cancel_queued()

    async def _loop(self) -> None:
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item.generation != self._generation or item.done.done():
                if not item.done.done():
                    item.done.cancel()
                continue
            try:
                result = await item.factory()
            except asyncio.CancelledError:
                if not item.done.done():
                    item.done.cancel()
                raise
            except Exception as e:
                log.exception("Conversation %s job failed", self.key)
                if not item.done.done():
                    item.done.set_exception(e)
            else:
                if not item.done.done():
                    item.done.set_result(result)


class ConversationLanes:
    """One actor per conversation key."""

    def __init__(self):
        self._actors: dict[str, ConversationActor] = {}

    def actor(self, key: str) -> ConversationActor:
        actor = self._actors.get(key)
        if actor is None:
            actor = ConversationActor(key)
            self._actors[key] = actor
        return actor

    async def run(self, key: str, coro_factory: JobFactory) -> Any:
        return await self.actor(key).submit(coro_factory)

    def pending_count(self, key: str) -> int:
        actor = self._actors.get(key)
        return actor.pending_count() if actor else 0

    def cancel_queued(self, key: str) -> bool:
        actor = self._actors.get(key)
        return actor.cancel_queued() if actor else False

    def shutdown(self) -> None:
        actors = list(self._actors.values())
        self._actors.clear()
        for actor in actors:
            actor.shutdown()
