"""Inbound request to channel delivery.

Ties the pieces together for one request: pairing gate, channel selection,
per-conversation lane, session entry, agent run, ordered dispatch and session
token write-back.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping

from agentrelay.blocks import BlockKind, system_event
from agentrelay.channels import ChannelDelivery, ChannelRegistry
from agentrelay.core import ConversationLanes
from agentrelay.dispatch import DeliveryPolicy, DispatchSummary, ReplyDispatcher, SessionTranscript
from agentrelay.errors import RelayError
from agentrelay.pairing import AllowAllGate, PairingDecision, PairingGate
from agentrelay.providers import normalize_provider_id
from agentrelay.runners import AgentInvocation, CliAgentRunner, Runner, RunResult
from agentrelay.sessions import SessionStore, get_session_token, set_session_token

log = logging.getLogger("pipeline")

DEFAULT_TIMEOUT_MS = 10 * 60 * 1000


@dataclass(frozen=True)
class InboundRequest:
    prompt: str
    to: str | None
    channel: str | None = None
    session_key: str | None = None
    sender: str | None = None
    provider: str | None = None
    model: str | None = None
    account_id: str | None = None
    reply_to_id: str | None = None


class OutcomeStatus(str, Enum):
    BLOCKED = "blocked"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PipelineOutcome:
    status: OutcomeStatus
    channel: str
    session_key: str | None = None
    run: RunResult | None = None
    summary: DispatchSummary = field(default_factory=DispatchSummary)
    pairing: PairingDecision | None = None


def format_run_failure(result: RunResult) -> str:
    try:
        result.raise_for_status()
    except RelayError as e:
        msg = str(e).strip()
        return f"Error: {type(e).__name__}: {msg}" if msg else f"Error: {type(e).__name__}"
    return ""


class ReplyPipeline:
    def __init__(
        self,
        *,
        registry: ChannelRegistry,
        store: SessionStore,
        config: Mapping[str, Any] | None = None,
        runner_factory: Callable[[], Runner] | None = None,
        gate: PairingGate | None = None,
        lanes: ConversationLanes | None = None,
    ):
        self.registry = registry
        self.store = store
        self.config = dict(config or {})
        self.runner_factory = runner_factory or CliAgentRunner
        self.gate = gate or AllowAllGate()
        self.lanes = lanes or ConversationLanes()

    def _session_file(self, session_id: str) -> Path:
        output_dir = Path(self.config.get("output_dir") or "output")
        return output_dir / "sessions" / f"{session_id}.jsonl"

    async def handle(
        self,
        request: InboundRequest,
        policy: DeliveryPolicy = DeliveryPolicy.LIVE,
    ) -> PipelineOutcome:
        selection = self.registry.resolve_channel(self.config, request.channel)
        delivery = ChannelDelivery(
            selection.adapter,
            request.to,
            account_id=request.account_id,
            reply_to_id=request.reply_to_id,
        )

        sender = (request.sender or request.to or "").strip()
        decision = self.gate.check(sender, selection.channel)
        if not decision.allowed:
            log.info("Blocked %s on %s pending pairing", sender, selection.channel)
            summary = DispatchSummary()
            if decision.instructions:
                dispatcher = ReplyDispatcher(delivery, policy=DeliveryPolicy.LIVE)
                dispatcher.enqueue(system_event(decision.instructions))
                dispatcher.mark_dispatch_idle()
                summary = await dispatcher.wait_for_idle()
                dispatcher.close()
            return PipelineOutcome(
                status=OutcomeStatus.BLOCKED,
                channel=selection.channel,
                summary=summary,
                pairing=decision,
            )

        session_key = (request.session_key or "").strip() or f"{selection.channel}:{request.to}"
        return await self.lanes.run(
            session_key,
            lambda: self._run(request, policy, selection.channel, session_key, delivery),
        )

    async def _run(
        self,
        request: InboundRequest,
        policy: DeliveryPolicy,
        channel: str,
        session_key: str,
        delivery: ChannelDelivery,
    ) -> PipelineOutcome:
        entry = self.store.get_or_create(session_key)
        raw_provider = request.provider or self.config.get("default_provider") or "claude-cli"
        provider = normalize_provider_id(raw_provider) or raw_provider
        resume_token = get_session_token(entry, provider)

        session_file = self._session_file(entry.session_id)
        invocation = AgentInvocation(
            session_id=entry.session_id,
            session_file=str(session_file),
            workspace_dir=str(self.config.get("working_dir") or Path.cwd()),
            prompt=request.prompt,
            provider=provider,
            model=request.model or self.config.get("default_model"),
            timeout_ms=int(self.config.get("timeout_ms") or DEFAULT_TIMEOUT_MS),
            run_id=uuid.uuid4().hex[:12],
            cli_session_id=resume_token,
        )

        dispatcher = ReplyDispatcher(
            delivery,
            policy=policy,
            verbose=bool(self.config.get("verbose")),
            transcript=SessionTranscript(session_file).append,
            typing_interval_s=self.config.get("typing_interval_s"),
            typing_mode=self.config.get("typing_mode"),
        )
        runner = self.runner_factory()
        try:
            dispatcher.signal_run_start()
            result = await runner.run_agent(invocation, on_block=dispatcher.enqueue)

            if not result.ok and not any(b.kind == BlockKind.TEXT for b in result.blocks):
                dispatcher.enqueue(system_event(format_run_failure(result), is_error=True))

            # A failed or killed run may leave a half-written CLI session behind.
            if result.ok and result.session_id:
                set_session_token(entry, provider, result.session_id)
                entry.cli_session_id = result.session_id
                self.store.save(entry)

            dispatcher.mark_dispatch_idle()
            summary = await dispatcher.wait_for_idle()
        finally:
            dispatcher.mark_dispatch_idle()
            dispatcher.close()

        if summary.failures:
            log.warning(
                "%d of %d block(s) failed to deliver on %s",
                len(summary.failures),
                len(summary.failures) + len(summary.sent),
                channel,
            )
        return PipelineOutcome(
            status=OutcomeStatus.COMPLETED if result.ok else OutcomeStatus.FAILED,
            channel=channel,
            session_key=session_key,
            run=result,
            summary=summary,
        )
