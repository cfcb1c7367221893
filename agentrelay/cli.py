"""Command line entry point.

Usage:
    agentrelay send [--channel C] --to T [--provider P] [--model M]
                    [--session KEY] [--sender S] [--buffered] PROMPT
    agentrelay channels
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Iterable

from agentrelay.channels import XmppOutbound, build_registry
from agentrelay.config import configure_logging, get_relay_config, load_env
from agentrelay.db import SessionRepository, init_db
from agentrelay.dispatch import DeliveryPolicy
from agentrelay.errors import ChannelResolutionError, ProcessSpawnError, RelayError
from agentrelay.pairing import AllowAllGate, AllowlistPairingGate
from agentrelay.pipeline import InboundRequest, OutcomeStatus, ReplyPipeline
from agentrelay.sessions import SessionStore

log = logging.getLogger("agentrelay")


def _parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="agentrelay", description="Relay agent CLI replies to a channel")
    parser.add_argument("--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    send = sub.add_parser("send", help="Run an agent and deliver its reply")
    send.add_argument("prompt")
    send.add_argument("--to", required=True)
    send.add_argument("--channel")
    send.add_argument("--provider")
    send.add_argument("--model")
    send.add_argument("--session", dest="session_key")
    send.add_argument("--sender")
    send.add_argument("--buffered", action="store_true", help="Deliver the reply as one message")

    sub.add_parser("channels", help="List channels and whether they are configured")
    return parser.parse_args(list(argv))


def _list_channels(config: dict) -> int:
    registry = build_registry(config)
    configured = set(registry.list_configured_channels(config))
    for adapter in registry.adapters():
        state = "configured" if adapter.id in configured else "not configured"
        print(f"{adapter.id:<10} {adapter.delivery_mode.value:<7} {state}")
    return 0


async def _send(args: argparse.Namespace, config: dict) -> int:
    registry = build_registry(config)
    selection = registry.resolve_channel(config, args.channel)
    if isinstance(selection.adapter, XmppOutbound):
        await selection.adapter.connect()

    db_path = Path(config["db_path"])
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = init_db(db_path)

    allow_from = config.get("allow_from") or []
    gate = AllowlistPairingGate(allow_from) if allow_from and args.sender else AllowAllGate()
    pipeline = ReplyPipeline(
        registry=registry,
        store=SessionStore(SessionRepository(conn)),
        config=config,
        gate=gate,
    )
    try:
        outcome = await pipeline.handle(
            InboundRequest(
                prompt=args.prompt,
                to=args.to,
                channel=selection.channel,
                session_key=args.session_key,
                sender=args.sender,
                provider=args.provider,
                model=args.model,
            ),
            DeliveryPolicy.BUFFERED if args.buffered else DeliveryPolicy.LIVE,
        )
    finally:
        pipeline.lanes.shutdown()
        for adapter in registry.adapters():
            await adapter.close()
        conn.close()

    summary = outcome.summary
    print(
        f"{outcome.status.value}: {len(summary.sent)} sent, "
        f"{len(summary.failures)} failed via {outcome.channel}"
    )
    for failure in summary.failures:
        print(f"  block {failure.block.seq}: {failure.error}", file=sys.stderr)
    if outcome.status == OutcomeStatus.COMPLETED and summary.ok:
        return 0
    return 1


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    load_env()
    configure_logging(args.verbose)
    config = get_relay_config()
    if args.verbose:
        config["verbose"] = True

    if args.command == "channels":
        return _list_channels(config)

    try:
        return asyncio.run(_send(args, config))
    except ChannelResolutionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except ProcessSpawnError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except RelayError as e:
        log.error("%s", e)
        return 1
    except KeyboardInterrupt:
        return 130
