"""Ordered delivery of reply blocks to a channel."""

from agentrelay.dispatch.dispatcher import (
    DeliveryFailure,
    DeliveryPolicy,
    DeliverySink,
    DispatchStatus,
    DispatchSummary,
    ReplyDispatcher,
    TypingMode,
    coalesce_blocks,
    resolve_typing_mode,
)
from agentrelay.dispatch.guard import ToolResultGuard
from agentrelay.dispatch.transcript import SessionTranscript

__all__ = [
    "DeliveryFailure",
    "DeliveryPolicy",
    "DeliverySink",
    "DispatchStatus",
    "DispatchSummary",
    "ReplyDispatcher",
    "SessionTranscript",
    "ToolResultGuard",
    "TypingMode",
    "coalesce_blocks",
    "resolve_typing_mode",
]
