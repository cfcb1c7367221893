"""Core orchestration helpers."""

from agentrelay.core.actor import ConversationActor, ConversationLanes

__all__ = ["ConversationActor", "ConversationLanes"]
