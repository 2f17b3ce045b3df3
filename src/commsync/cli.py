"""CommSync CLI — command-line interface for the comms simulation.

Usage:
    python -m commsync.cli status
    python -m commsync.cli simulate --seconds 60 --seed 7
    python -m commsync.cli send --from CMD-001 --to FIELD-001 --content "Hold position"
    python -m commsync.cli check-invariants
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import Any

from commsync.config import POLICY_FILENAME, SimulationConfig
from commsync.models.network import MessageType, Priority
from commsync.network.scheduler import Scheduler
from commsync.network.simulator import NetworkSimulator
from commsync.service import CommsService


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"


def _load_config(config_dir: Path) -> SimulationConfig:
    if (config_dir / POLICY_FILENAME).exists():
        return SimulationConfig.from_config_dir(config_dir)
    return SimulationConfig.from_env()


def _make_network(args: argparse.Namespace) -> NetworkSimulator:
    """Create a simulator on virtual time, seeded if requested."""
    return NetworkSimulator(
        _load_config(args.config),
        scheduler=Scheduler(start_time=0.0),
        rng=random.Random(args.seed),
    )


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def cmd_status(args: argparse.Namespace) -> int:
    network = _make_network(args)
    print(_to_json({
        "network": network.stats(),
        "nodes": [
            {
                "id": n.node_id,
                "name": n.display_name,
                "role": n.role.value,
                "status": n.status.value,
            }
            for n in network.get_nodes()
        ],
    }))
    return 0


def cmd_simulate(args: argparse.Namespace) -> int:
    """Run a seeded traffic simulation and report the outcome."""
    network = _make_network(args)
    services = {n.node_id: CommsService(n.node_id, network) for n in network.get_nodes()}
    node_ids = list(services)
    traffic = random.Random(args.seed)

    for second in range(args.seconds):
        for _ in range(args.rate):
            sender, recipient = traffic.sample(node_ids, 2)
            services[sender].send_message(
                recipient,
                f"sitrep {second}",
                priority=traffic.choice(list(Priority)),
                message_type=traffic.choice(list(MessageType)),
            )
        network.advance(1.0)
    # Let in-flight deliveries settle
    network.advance(args.settle)

    outcomes: dict[str, int] = {}
    for message in network.get_messages(limit=args.seconds * args.rate):
        key = message.delivery_status.value
        outcomes[key] = outcomes.get(key, 0) + 1

    print(_to_json({
        "network": network.stats(),
        "delivery": outcomes,
        "ledgers": {node_id: svc.ledger.stats() for node_id, svc in services.items()},
        "recent_events": [
            {"t": round(e.timestamp, 2), "kind": e.kind.value, "node": e.node_id}
            for e in network.get_events(args.events)
        ],
    }))
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    network = _make_network(args)
    if network.get_node(args.sender) is None:
        print(f"Failed: Unknown node: {args.sender}", file=sys.stderr)
        return 1
    sender = CommsService(args.sender, network)
    result = sender.send_message(
        args.recipient,
        args.content,
        priority=Priority(args.priority),
        message_type=MessageType(args.type),
        encrypt=not args.plain,
    )
    if not result.success:
        print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
        return 1
    network.advance(args.wait)
    message = network.get_message(result.data["message_id"])
    print(_to_json({
        "message_id": result.data["message_id"],
        "vector_clock": result.data["vector_clock"],
        "block_index": result.data["block_index"],
        "delivery_status": message.delivery_status.value if message else None,
    }))
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run the invariant checks over a seeded simulation."""
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="commsync",
        description="CommSync — tactical comms simulation CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for faults and jitter")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show network status")

    # simulate
    p_sim = sub.add_parser("simulate", help="Run a seeded traffic simulation")
    p_sim.add_argument("--seconds", type=int, default=60, help="Simulated seconds (default: 60)")
    p_sim.add_argument("--rate", type=int, default=1, help="Messages per second (default: 1)")
    p_sim.add_argument(
        "--settle", type=float, default=15.0,
        help="Extra seconds for in-flight deliveries (default: 15)",
    )
    p_sim.add_argument("--events", type=int, default=20, help="Recent events to show")

    # send
    p_send = sub.add_parser("send", help="Send one message and report its delivery")
    p_send.add_argument("--from", dest="sender", required=True, help="Sender node ID")
    p_send.add_argument("--to", dest="recipient", required=True, help="Recipient node ID")
    p_send.add_argument("--content", required=True, help="Message text")
    p_send.add_argument(
        "--priority", default="medium", choices=[p.value for p in Priority],
    )
    p_send.add_argument(
        "--type", default="text", choices=[t.value for t in MessageType],
    )
    p_send.add_argument("--plain", action="store_true", help="Send without encryption")
    p_send.add_argument(
        "--wait", type=float, default=10.0,
        help="Simulated seconds to wait for delivery (default: 10)",
    )

    # check-invariants
    sub.add_parser("check-invariants", help="Run invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s:%(name)s:%(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "simulate": cmd_simulate,
        "send": cmd_send,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
