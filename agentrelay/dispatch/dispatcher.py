"""Reply dispatcher.

Accepts reply blocks synchronously from a runner callback and forwards them to
a channel in production order. One worker task drains the queue so at most one
send is in flight per dispatcher; `wait_for_idle()` is the barrier callers use
to know every block enqueued so far has been sent or has failed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol

from agentrelay.blocks import BlockKind, ReplyBlock
from agentrelay.channels.base import DeliveryMode
from agentrelay.dispatch.guard import ToolResultGuard
from agentrelay.dispatch.typing import TypingIndicator

log = logging.getLogger("dispatch")


class DeliveryPolicy(str, Enum):
    BUFFERED = "buffered"
    LIVE = "live"


class TypingMode(str, Enum):
    """When the typing signal starts for a run.

    INSTANT starts as soon as the run starts, MESSAGE on the first text block,
    THINKING only once the agent starts working on tools. NEVER disables it.
    """

    INSTANT = "instant"
    MESSAGE = "message"
    THINKING = "thinking"
    NEVER = "never"


def resolve_typing_mode(value: str | TypingMode | None) -> TypingMode:
    if not value:
        return TypingMode.MESSAGE
    try:
        return TypingMode(str(value).strip().lower())
    except ValueError:
        log.warning("Unknown typing mode %r, using message", value)
        return TypingMode.MESSAGE


class DispatchStatus(str, Enum):
    BUSY = "busy"
    IDLE = "idle"


class DeliverySink(Protocol):
    delivery_mode: DeliveryMode

    async def deliver(self, block: ReplyBlock) -> Any: ...

    async def send_typing(self) -> None: ...


@dataclass(frozen=True)
class DeliveryFailure:
    block: ReplyBlock
    error: Exception


@dataclass
class DispatchSummary:
    sent: list[ReplyBlock] = field(default_factory=list)
    failures: list[DeliveryFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class _Pending:
    block: ReplyBlock
    weight: int = 1


def coalesce_blocks(blocks: list[ReplyBlock]) -> ReplyBlock:
    """Merge buffered blocks into one logical send."""
    texts = [b.text.strip() for b in blocks if b.text.strip()]
    media: list[str] = []
    for b in blocks:
        media.extend(b.media_urls)
    kind = BlockKind.TEXT
    if all(b.kind == BlockKind.SYSTEM_EVENT for b in blocks):
        kind = BlockKind.SYSTEM_EVENT
    return ReplyBlock(
        kind=kind,
        seq=blocks[0].seq,
        text="\n\n".join(texts),
        media_urls=tuple(media),
        is_error=all(b.is_error for b in blocks),
    )


class ReplyDispatcher:
    def __init__(
        self,
        sink: DeliverySink,
        *,
        policy: DeliveryPolicy = DeliveryPolicy.LIVE,
        verbose: bool = False,
        transcript: Callable[[ReplyBlock], None] | None = None,
        typing_interval_s: float | None = None,
        typing_mode: str | TypingMode | None = TypingMode.MESSAGE,
        on_error: Callable[[ReplyBlock, Exception], None] | None = None,
    ):
        self.sink = sink
        self.policy = DeliveryPolicy(policy)
        self.verbose = verbose
        self.typing_interval_s = typing_interval_s
        self.typing_mode = resolve_typing_mode(typing_mode)
        # Queued channels accept a send into their own FIFO; we only hand it off.
        self.delivery_mode = DeliveryMode(getattr(sink, "delivery_mode", DeliveryMode.DIRECT))
        self._on_error = on_error

        self.guard = ToolResultGuard(transcript or (lambda block: None))
        self._typing = TypingIndicator(
            send_typing=self._fire_typing,
            is_active=lambda: not self._marked_idle,
        )
        self._typing_tasks: set[asyncio.Task] = set()
        self._typing_started = False
        self._handoffs: set[asyncio.Task] = set()

        self._queue: asyncio.Queue[_Pending] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._buffer: list[ReplyBlock] = []
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._marked_idle = False

        self._sent: list[ReplyBlock] = []
        self._failures: list[DeliveryFailure] = []

    @property
    def status(self) -> DispatchStatus:
        return DispatchStatus.IDLE if self._pending == 0 else DispatchStatus.BUSY

    @property
    def pending_count(self) -> int:
        return self._pending

    def is_deliverable(self, block: ReplyBlock) -> bool:
        if block.kind == BlockKind.TOOL_CALL:
            return False
        if block.kind == BlockKind.TOOL_RESULT:
            return self.verbose and not block.synthetic and not block.is_empty
        return not block.is_empty

    def enqueue(self, block: ReplyBlock) -> None:
        """Accept a block from the producer. Never blocks."""
        self.guard.append(block)
        self._signal_typing(block)
        if not self.is_deliverable(block):
            return
        if self.policy == DeliveryPolicy.BUFFERED and not self._marked_idle:
            self._buffer.append(block)
            self._add_pending(1)
            return
        self._add_pending(1)
        self._queue.put_nowait(_Pending(block))
        self._ensure_running()

    def signal_run_start(self) -> None:
        """Called once the agent run starts; INSTANT mode begins typing here."""
        if self.typing_mode == TypingMode.INSTANT:
            self._start_typing()

    def mark_dispatch_idle(self) -> None:
        """Signal that the producer is done. Idempotent, valid with no blocks."""
        if self._marked_idle:
            return
        self._marked_idle = True
        self.guard.flush_pending_tool_results()
        self._typing.stop()
        if self._buffer:
            buffered = self._buffer
            self._buffer = []
            # Already counted as pending at enqueue time.
            self._queue.put_nowait(_Pending(coalesce_blocks(buffered), weight=len(buffered)))
            self._ensure_running()

    async def wait_for_idle(self) -> DispatchSummary:
        """Resolve once every block enqueued so far has been sent or failed."""
        await self._idle.wait()
        return self.summary()

    def summary(self) -> DispatchSummary:
        return DispatchSummary(sent=list(self._sent), failures=list(self._failures))

    def close(self) -> None:
        self._typing.stop()
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
        for t in list(self._typing_tasks) + list(self._handoffs):
            t.cancel()

    def _add_pending(self, n: int) -> None:
        self._pending += n
        self._idle.clear()

    def _done_pending(self, n: int) -> None:
        self._pending = max(0, self._pending - n)
        if self._pending == 0:
            self._idle.set()

    def _ensure_running(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop())

    def _signal_typing(self, block: ReplyBlock) -> None:
        if self._typing_started:
            return
        if block.kind == BlockKind.TOOL_CALL:
            self._start_typing()
        elif block.kind == BlockKind.TEXT and self.typing_mode in (TypingMode.INSTANT, TypingMode.MESSAGE):
            self._start_typing()

    def _start_typing(self) -> None:
        if self._typing_started or self._marked_idle or self.typing_mode == TypingMode.NEVER:
            return
        self._typing_started = True
        if self.typing_interval_s:
            self._typing.start(interval_s=self.typing_interval_s)
        else:
            self._fire_typing()

    async def _send_typing(self) -> None:
        try:
            await self.sink.send_typing()
        except asyncio.CancelledError:
            raise
        except Exception:
            log.debug("Typing signal failed", exc_info=True)

    def _fire_typing(self) -> None:
        task = asyncio.create_task(self._send_typing())
        self._typing_tasks.add(task)
        task.add_done_callback(self._typing_tasks.discard)

    async def _deliver_one(self, item: _Pending) -> None:
        try:
            await self.sink.deliver(item.block)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning("Delivery failed for block seq=%s: %s", item.block.seq, e)
            self._failures.append(DeliveryFailure(item.block, e))
            if self._on_error is not None:
                self._on_error(item.block, e)
        else:
            self._sent.append(item.block)
        # Channels clear the typing state when a message lands.
        if self._typing_started and not self._marked_idle:
            await self._send_typing()

    async def _hand_off(self, item: _Pending) -> None:
        try:
            await self._deliver_one(item)
        finally:
            self._done_pending(item.weight)

    async def _loop(self) -> None:
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if self.delivery_mode == DeliveryMode.QUEUED:
                task = asyncio.create_task(self._hand_off(item))
                self._handoffs.add(task)
                task.add_done_callback(self._handoffs.discard)
                continue
            await self._hand_off(item)
