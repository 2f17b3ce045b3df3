"""Fault injector — plans random node drops, reconnects, partitions and server outages.

Pure planning: given a snapshot of node statuses, the injector rolls
each configured probability once and returns the faults to apply. The
simulator applies them. Randomness comes from an injected source with
the random.Random interface (random, choice, uniform), so tests can
supply seeded or scripted sequences.

Guards:
- A drop needs more than one online node (never drop the last one).
- A partition needs more than two online nodes.
- A reconnect needs at least one offline node.
- An outage only starts while the server is online.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, TypeVar

from commsync.config import FaultConfig
from commsync.models.network import NetworkNode, NodeStatus


T = TypeVar("T")


class RandomSource(Protocol):
    def random(self) -> float: ...

    def choice(self, seq: Sequence[T]) -> T: ...

    def uniform(self, a: float, b: float) -> float: ...


class FaultKind(str, enum.Enum):
    DROP = "drop"
    RECONNECT = "reconnect"
    PARTITION = "partition"
    SERVER_OUTAGE = "server_outage"


@dataclass(frozen=True)
class FaultAction:
    """A single planned fault."""
    kind: FaultKind
    node_id: Optional[str] = None
    recovery_delay_s: Optional[float] = None


class FaultInjector:
    """Plans faults for one injection tick."""

    def __init__(self, config: FaultConfig, rng: RandomSource) -> None:
        self._config = config
        self._rng = rng

    @property
    def config(self) -> FaultConfig:
        return self._config

    def plan(self, nodes: Sequence[NetworkNode], server_online: bool) -> list[FaultAction]:
        """Roll every fault once against the given snapshot.

        Later rolls see the effect of earlier planned faults, so a node
        is never both dropped and partitioned in the same tick.
        """
        statuses = {node.node_id: node.status for node in nodes}
        actions: list[FaultAction] = []

        if self._rng.random() < self._config.drop_probability:
            online = _with_status(statuses, NodeStatus.ONLINE)
            if len(online) > 1:
                node_id = self._rng.choice(online)
                statuses[node_id] = NodeStatus.OFFLINE
                actions.append(FaultAction(FaultKind.DROP, node_id))

        if self._rng.random() < self._config.reconnect_probability:
            offline = [
                node_id
                for node_id in _with_status(statuses, NodeStatus.OFFLINE)
                if not any(a.node_id == node_id for a in actions)
            ]
            if offline:
                node_id = self._rng.choice(offline)
                statuses[node_id] = NodeStatus.ONLINE
                actions.append(FaultAction(FaultKind.RECONNECT, node_id))

        if self._rng.random() < self._config.partition_probability:
            online = [
                node_id
                for node_id in _with_status(statuses, NodeStatus.ONLINE)
                if not any(a.node_id == node_id for a in actions)
            ]
            if len(online) > 2:
                node_id = self._rng.choice(online)
                statuses[node_id] = NodeStatus.DEGRADED
                actions.append(FaultAction(FaultKind.PARTITION, node_id))

        if server_online and self._rng.random() < self._config.server_outage_probability:
            low, high = self._config.server_recovery_delay_s
            actions.append(
                FaultAction(FaultKind.SERVER_OUTAGE, recovery_delay_s=self._rng.uniform(low, high))
            )

        return actions


def _with_status(statuses: dict[str, NodeStatus], status: NodeStatus) -> list[str]:
    return [node_id for node_id, s in statuses.items() if s == status]
