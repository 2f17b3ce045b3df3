#!/usr/bin/env python3
"""CommSync invariant checks against the policy file and a seeded simulation run."""

import json
import random
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from commsync.config import POLICY_FILENAME, SimulationConfig  # noqa: E402
from commsync.models.network import DeliveryStatus  # noqa: E402
from commsync.network.scheduler import Scheduler  # noqa: E402
from commsync.network.simulator import NetworkSimulator  # noqa: E402
from commsync.service import CommsService  # noqa: E402


DEFAULT_CONFIG_DIR = ROOT / "config"
SIM_SECONDS = 120
SETTLE_SECONDS = 30


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_policy(policy: dict, errors: list[str]) -> None:
    """Validate the raw policy document before it is turned into config."""
    faults = policy.get("fault_injection", {})
    for key in (
        "drop_probability",
        "reconnect_probability",
        "partition_probability",
        "server_outage_probability",
    ):
        value = faults.get(key)
        if value is None:
            errors.append(f"fault_injection.{key} missing")
        elif not (0.0 <= value <= 1.0):
            errors.append(f"fault_injection.{key} must be in [0, 1], got {value}")

    low, high = faults.get("server_recovery_delay_s", (0, 0))
    if low <= 0 or high < low:
        errors.append("server_recovery_delay_s must be a positive, non-inverted range")

    roster = policy.get("roster", [])
    if not roster:
        errors.append("roster must not be empty")
    ids = [entry.get("id") for entry in roster]
    if len(ids) != len(set(ids)):
        errors.append(f"roster ids must be unique, got {ids}")
    if roster and not any(entry.get("role") == "command" for entry in roster):
        errors.append("roster must contain at least one command node")

    retention = policy.get("retention", {})
    if retention.get("event_log_capacity", 0) < 1:
        errors.append("retention.event_log_capacity must be >= 1")


def check_simulation(config: SimulationConfig, errors: list[str], seed: int = 1) -> None:
    """Run seeded traffic with faults enabled and check the runtime invariants."""
    network = NetworkSimulator(config, scheduler=Scheduler(start_time=0.0), rng=random.Random(seed))
    services = {n.node_id: CommsService(n.node_id, network) for n in network.get_nodes()}
    node_ids = list(services)
    if len(node_ids) < 2:
        errors.append("simulation needs at least two nodes")
        return
    traffic = random.Random(seed + 1)

    seen_status: dict[str, DeliveryStatus] = {}
    order = {
        DeliveryStatus.PENDING: 0,
        DeliveryStatus.DELIVERED: 1,
        DeliveryStatus.FAILED: 1,
        DeliveryStatus.ACKNOWLEDGED: 2,
    }

    for second in range(SIM_SECONDS + SETTLE_SECONDS):
        if second < SIM_SECONDS:
            sender, recipient = traffic.sample(node_ids, 2)
            services[sender].send_message(recipient, f"check {second}")
        network.advance(1.0)

        for message in network.get_messages(limit=config.message_history_limit):
            previous = seen_status.get(message.message_id)
            current = message.delivery_status
            if previous is not None:
                if order[current] < order[previous]:
                    errors.append(
                        f"{message.message_id} regressed {previous.value} -> {current.value}"
                    )
                if previous == DeliveryStatus.FAILED and current != DeliveryStatus.FAILED:
                    errors.append(f"{message.message_id} left terminal state failed")
            seen_status[message.message_id] = current

        if len(network.get_events(limit=config.event_log_capacity + 1)) > config.event_log_capacity:
            errors.append("event log exceeded its capacity")

    for node_id, service in services.items():
        if not service.ledger.validate():
            errors.append(f"{node_id}: ledger failed validation")
        chain = service.ledger.get_chain()
        for index, block in enumerate(chain):
            if block.index != index:
                errors.append(f"{node_id}: block at position {index} has index {block.index}")
        if service.ledger.pending:
            errors.append(f"{node_id}: pending queue not empty after commit")

    pending = [m for m in network.get_messages(limit=SIM_SECONDS) if m.delivery_status == DeliveryStatus.PENDING]
    if pending:
        errors.append(f"{len(pending)} message(s) still pending after settle window")

    health = network.stats()["network_health"]
    if not (0.0 <= health <= 1.0):
        errors.append(f"network_health out of range: {health}")


def check(config_dir: Path = DEFAULT_CONFIG_DIR) -> int:
    errors: list[str] = []
    policy_path = config_dir / POLICY_FILENAME
    policy = load_json(policy_path)
    check_policy(policy, errors)
    if errors:
        for err in errors:
            print(f"  FAIL: {err}")
        return 1

    config = SimulationConfig.from_config_dir(config_dir)
    check_simulation(config, errors)

    if errors:
        print(f"Invariant checks FAILED ({len(errors)} error(s)):")
        for err in errors:
            print(f"  FAIL: {err}")
        return 1

    print("All invariant checks passed.")
    return 0


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_CONFIG_DIR
    raise SystemExit(check(target))
