"""Simulation configuration — loaded from a policy directory and the environment.

The policy file `network_policy.json` holds every tunable: fault injection
probabilities and cadence, the delivery delay model, retention limits,
the ledger commit policy and the node roster. Environment variables
prefixed COMMSYNC_ (optionally from a .env file) override single values.

Fail-closed: out-of-range values raise ValueError at load time.
"""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from commsync.models.network import NodeRole


POLICY_FILENAME = "network_policy.json"
ENV_PREFIX = "COMMSYNC_"


@dataclass(frozen=True)
class FaultConfig:
    """Random fault injection. Each probability is rolled once per injection tick."""
    enabled: bool = True
    interval_s: float = 5.0
    drop_probability: float = 0.075
    reconnect_probability: float = 0.075
    partition_probability: float = 0.075
    server_outage_probability: float = 0.0075
    server_recovery_delay_s: tuple[float, float] = (10.0, 30.0)

    def __post_init__(self) -> None:
        for name in (
            "drop_probability",
            "reconnect_probability",
            "partition_probability",
            "server_outage_probability",
        ):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if self.interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {self.interval_s}")
        _check_range("server_recovery_delay_s", self.server_recovery_delay_s)


@dataclass(frozen=True)
class DeliveryConfig:
    """Delivery delay model, in seconds. Penalties compound."""
    base_delay_s: float = 0.1
    server_offline_penalty_s: float = 2.0
    degraded_sender_penalty_s: float = 1.0
    offline_recipient_penalty_s: float = 5.0
    partition_penalty_s: float = 3.0
    jitter_s: float = 1.0
    ack_delay_s: tuple[float, float] = (0.5, 1.5)

    def __post_init__(self) -> None:
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if isinstance(value, float) and value < 0:
                raise ValueError(f"{f.name} must be >= 0, got {value}")
        _check_range("ack_delay_s", self.ack_delay_s)


@dataclass(frozen=True)
class NodeSpec:
    """A roster entry used to create a NetworkNode at startup."""
    node_id: str
    name: str
    role: NodeRole
    encryption_key: str
    position: tuple[float, float] = (0.0, 0.0)


DEFAULT_ROSTER: tuple[NodeSpec, ...] = (
    NodeSpec("CMD-001", "Command Center Alpha", NodeRole.COMMAND, "RSA-PUB-CMD001", (50.0, 20.0)),
    NodeSpec("FIELD-001", "Field Unit Bravo", NodeRole.FIELD, "RSA-PUB-FIELD001", (20.0, 60.0)),
    NodeSpec("FIELD-002", "Field Unit Charlie", NodeRole.FIELD, "RSA-PUB-FIELD002", (80.0, 70.0)),
    NodeSpec("RELAY-001", "Relay Station Delta", NodeRole.RELAY, "RSA-PUB-RELAY001", (50.0, 80.0)),
)


@dataclass(frozen=True)
class SimulationConfig:
    """Complete configuration for a simulator and its ledgers.

    Usage:
        config = SimulationConfig.from_config_dir(Path("config"))
        config = SimulationConfig.from_env()      # honours .env overrides
        config = SimulationConfig()               # built-in defaults
    """
    faults: FaultConfig = field(default_factory=FaultConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    status_refresh_interval_s: float = 2.0
    event_log_capacity: int = 100
    message_history_limit: int = 500
    commit_batch_size: int = 1
    roster: tuple[NodeSpec, ...] = DEFAULT_ROSTER

    def __post_init__(self) -> None:
        if self.status_refresh_interval_s <= 0:
            raise ValueError(
                f"status_refresh_interval_s must be > 0, got {self.status_refresh_interval_s}"
            )
        if self.event_log_capacity < 1:
            raise ValueError(f"event_log_capacity must be >= 1, got {self.event_log_capacity}")
        if self.message_history_limit < 1:
            raise ValueError(
                f"message_history_limit must be >= 1, got {self.message_history_limit}"
            )
        if self.commit_batch_size < 1:
            raise ValueError(f"commit_batch_size must be >= 1, got {self.commit_batch_size}")
        ids = [spec.node_id for spec in self.roster]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate node ids in roster: {ids}")
        if any(not node_id.strip() for node_id in ids):
            raise ValueError("Roster contains a blank node id")

    def node_ids(self) -> list[str]:
        return [spec.node_id for spec in self.roster]

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SimulationConfig:
        faults_data = data.get("fault_injection", {})
        delivery_data = data.get("delivery", {})
        retention = data.get("retention", {})
        ledger = data.get("ledger", {})

        faults = FaultConfig(
            enabled=bool(faults_data.get("enabled", True)),
            interval_s=float(faults_data.get("interval_s", 5.0)),
            drop_probability=float(faults_data.get("drop_probability", 0.075)),
            reconnect_probability=float(faults_data.get("reconnect_probability", 0.075)),
            partition_probability=float(faults_data.get("partition_probability", 0.075)),
            server_outage_probability=float(
                faults_data.get("server_outage_probability", 0.0075)
            ),
            server_recovery_delay_s=_pair(faults_data.get("server_recovery_delay_s", (10.0, 30.0))),
        )
        delivery = DeliveryConfig(
            base_delay_s=float(delivery_data.get("base_delay_s", 0.1)),
            server_offline_penalty_s=float(delivery_data.get("server_offline_penalty_s", 2.0)),
            degraded_sender_penalty_s=float(delivery_data.get("degraded_sender_penalty_s", 1.0)),
            offline_recipient_penalty_s=float(
                delivery_data.get("offline_recipient_penalty_s", 5.0)
            ),
            partition_penalty_s=float(delivery_data.get("partition_penalty_s", 3.0)),
            jitter_s=float(delivery_data.get("jitter_s", 1.0)),
            ack_delay_s=_pair(delivery_data.get("ack_delay_s", (0.5, 1.5))),
        )

        roster_data = data.get("roster")
        roster = DEFAULT_ROSTER
        if roster_data is not None:
            roster = tuple(
                NodeSpec(
                    node_id=entry["id"],
                    name=entry.get("name", entry["id"]),
                    role=NodeRole(entry["role"]),
                    encryption_key=entry.get("encryption_key", f"RSA-PUB-{entry['id']}"),
                    position=_pair(entry.get("position", (0.0, 0.0))),
                )
                for entry in roster_data
            )

        return cls(
            faults=faults,
            delivery=delivery,
            status_refresh_interval_s=float(data.get("status_refresh_interval_s", 2.0)),
            event_log_capacity=int(retention.get("event_log_capacity", 100)),
            message_history_limit=int(retention.get("message_history_limit", 500)),
            commit_batch_size=int(ledger.get("commit_batch_size", 1)),
            roster=roster,
        )

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> SimulationConfig:
        """Load network_policy.json from a config directory."""
        path = config_dir / POLICY_FILENAME
        with path.open("r", encoding="utf-8") as handle:
            return cls.from_dict(json.load(handle))

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> SimulationConfig:
        """Load from COMMSYNC_CONFIG_DIR (if set) and apply COMMSYNC_* overrides."""
        load_dotenv(env_file)

        config_dir = os.getenv(f"{ENV_PREFIX}CONFIG_DIR")
        config = cls.from_config_dir(Path(config_dir)) if config_dir else cls()

        fault_overrides: dict[str, Any] = {}
        enabled = os.getenv(f"{ENV_PREFIX}FAULT_INJECTION_ENABLED")
        if enabled is not None:
            fault_overrides["enabled"] = enabled.strip().lower() in ("1", "true", "yes", "on")
        for name in (
            "drop_probability",
            "reconnect_probability",
            "partition_probability",
            "server_outage_probability",
        ):
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                fault_overrides[name] = float(raw)
        interval = os.getenv(f"{ENV_PREFIX}FAULT_INTERVAL_S")
        if interval is not None:
            fault_overrides["interval_s"] = float(interval)
        recovery = os.getenv(f"{ENV_PREFIX}SERVER_RECOVERY_DELAY_S")
        if recovery is not None:
            # "low,high" in seconds
            fault_overrides["server_recovery_delay_s"] = _pair(recovery.split(","))
        if fault_overrides:
            config = dataclasses.replace(
                config, faults=dataclasses.replace(config.faults, **fault_overrides)
            )

        batch = os.getenv(f"{ENV_PREFIX}COMMIT_BATCH_SIZE")
        if batch is not None:
            config = dataclasses.replace(config, commit_batch_size=int(batch))
        return config


def _pair(value: Any) -> tuple[float, float]:
    low, high = value
    return (float(low), float(high))


def _check_range(name: str, value: tuple[float, float]) -> None:
    low, high = value
    if low < 0 or high < low:
        raise ValueError(f"{name} must satisfy 0 <= low <= high, got {value}")
