"""Network simulator — node liveness, simulated delivery and fault injection.

The simulator owns the node roster, a bounded message history, a bounded
event log and the global server flag. Transport is simulated in-process:
send() returns immediately and the delivery outcome is resolved later on
the simulator's scheduler.

Node state machine (per node):
    online  -> offline    drop (random or operator)          node_leave
    offline -> online     reconnect (random or operator)     node_join
    online  -> degraded   partition (random)                 network_partition
    degraded -> online    heal (operator) or force online    network_heal / node_join
Server outages are tracked separately and logged as node_leave/node_join
on the synthetic SERVER identity.

Every mutation, whether caller-initiated or timer-driven, runs under the
scheduler lock. Snapshots returned to callers are detached copies.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections import deque
from typing import Any, Mapping, Optional

from commsync.config import SimulationConfig
from commsync.errors import InvalidReference
from commsync.models.network import (
    SERVER_NODE_ID,
    DeliveryStatus,
    EventKind,
    MessageType,
    NetworkEvent,
    NetworkMessage,
    NetworkNode,
    NodeStatus,
    Priority,
)
from commsync.network.delivery import DeliveryStateMachine
from commsync.network.event_log import EventLog
from commsync.network.faults import FaultAction, FaultInjector, FaultKind, RandomSource
from commsync.network.scheduler import Scheduler

logger = logging.getLogger(__name__)


class NetworkSimulator:
    """In-process peer-to-peer network model.

    Usage:
        sim = NetworkSimulator(config, scheduler=Scheduler(start_time=0.0),
                               rng=random.Random(7))
        msg_id = sim.send("CMD-001", "FIELD-001", "hold position", clock.tick())
        sim.advance(5.0)
        sim.get_message(msg_id).delivery_status

    For wall-clock operation call start() and stop().
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[RandomSource] = None,
    ) -> None:
        self._config = config or SimulationConfig()
        self._scheduler = scheduler or Scheduler()
        self._rng: RandomSource = rng or random.Random()
        self._injector = FaultInjector(self._config.faults, self._rng)
        self._delivery = self._config.delivery
        self._lock = self._scheduler.lock

        now = self._scheduler.now()
        self._nodes: dict[str, NetworkNode] = {
            spec.node_id: NetworkNode(
                node_id=spec.node_id,
                display_name=spec.name,
                role=spec.role,
                encryption_key=spec.encryption_key,
                last_seen_at=now,
                position=spec.position,
            )
            for spec in self._config.roster
        }
        self._messages: deque[NetworkMessage] = deque(maxlen=self._config.message_history_limit)
        self._events = EventLog(self._config.event_log_capacity)
        self._server_online = True

        if self._config.faults.enabled:
            self._scheduler.call_every(
                self._config.faults.interval_s, self._inject_faults, "fault-injection"
            )
        self._scheduler.call_every(
            self._config.status_refresh_interval_s, self._refresh_statuses, "status-refresh"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def start(self, tick: float = 0.1) -> None:
        """Run timers against the wall clock on a background thread."""
        self._scheduler.start(tick)

    def stop(self) -> None:
        self._scheduler.stop()

    def advance(self, seconds: float) -> int:
        """Advance simulated time, resolving due deliveries and faults."""
        return self._scheduler.advance(seconds)

    def now(self) -> float:
        return self._scheduler.now()

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def send(
        self,
        sender_id: str,
        recipient_id: str,
        content: str,
        vector_clock: Mapping[str, int],
        priority: Priority = Priority.MEDIUM,
        message_type: MessageType = MessageType.TEXT,
        encrypted: bool = False,
        timestamp: Optional[float] = None,
    ) -> str:
        """Queue a message for simulated delivery. Returns its id.

        The message starts PENDING; its outcome is resolved after a delay
        computed from current network conditions. Raises InvalidReference
        for an unknown sender or recipient.
        """
        with self._lock:
            sender = self._require_node(sender_id)
            self._require_node(recipient_id)

            message = NetworkMessage(
                message_id=f"msg-{uuid.uuid4().hex[:12]}",
                sender_id=sender_id,
                recipient_id=recipient_id,
                content=content,
                timestamp=self._scheduler.now() if timestamp is None else timestamp,
                vector_clock=dict(vector_clock),
                priority=priority,
                message_type=message_type,
                encrypted=encrypted,
            )
            self._messages.appendleft(message)
            sender.message_count += 1
            self._events.record(
                EventKind.MESSAGE_SENT,
                sender_id,
                self._scheduler.now(),
                {"to": recipient_id, "message_id": message.message_id},
            )

            delay = self.delivery_delay(sender_id, recipient_id)
            self._scheduler.call_later(
                delay, lambda: self._resolve_delivery(message), "delivery"
            )
            logger.debug(
                "Sent %s %s -> %s (delivery in %.2fs)",
                message.message_id,
                sender_id,
                recipient_id,
                delay,
            )
            return message.message_id

    def delivery_delay(self, sender_id: str, recipient_id: str) -> float:
        """Compute a delivery delay from current conditions.

        Penalties compound: server down, degraded sender, offline
        recipient and a partitioned endpoint each add their own delay,
        plus bounded random jitter.
        """
        with self._lock:
            sender = self._require_node(sender_id)
            recipient = self._require_node(recipient_id)
            cfg = self._delivery

            delay = cfg.base_delay_s
            if not self._server_online:
                delay += cfg.server_offline_penalty_s
            if sender.status == NodeStatus.DEGRADED:
                delay += cfg.degraded_sender_penalty_s
            if recipient.status == NodeStatus.OFFLINE:
                delay += cfg.offline_recipient_penalty_s
            if sender.partitioned or recipient.partitioned:
                delay += cfg.partition_penalty_s
            return delay + self._rng.uniform(0.0, cfg.jitter_s)

    def _resolve_delivery(self, message: NetworkMessage) -> None:
        recipient = self._nodes[message.recipient_id]
        if recipient.status == NodeStatus.OFFLINE:
            self._transition(message, DeliveryStatus.FAILED)
            return

        if not self._transition(message, DeliveryStatus.DELIVERED):
            return
        self._events.record(
            EventKind.MESSAGE_RECEIVED,
            message.recipient_id,
            self._scheduler.now(),
            {"from": message.sender_id, "message_id": message.message_id},
        )
        low, high = self._delivery.ack_delay_s
        self._scheduler.call_later(
            self._rng.uniform(low, high),
            lambda: self._transition(message, DeliveryStatus.ACKNOWLEDGED),
            "acknowledge",
        )

    def _transition(self, message: NetworkMessage, target: DeliveryStatus) -> bool:
        errors = DeliveryStateMachine.apply_transition(message, target)
        if errors:
            logger.warning("; ".join(errors))
            return False
        logger.debug("Message %s -> %s", message.message_id, target.value)
        return True

    # ------------------------------------------------------------------
    # Operator overrides
    # ------------------------------------------------------------------

    def force_offline(self, node_id: str) -> bool:
        """Take a node offline. Returns False if it already was."""
        with self._lock:
            node = self._require_node(node_id)
            if node.status == NodeStatus.OFFLINE:
                return False
            self._go_offline(node)
            logger.info("Operator forced %s offline", node_id)
            return True

    def force_online(self, node_id: str) -> bool:
        """Bring a node fully online, clearing any partition.

        Returns False if it was already online and unpartitioned.
        """
        with self._lock:
            node = self._require_node(node_id)
            if node.status == NodeStatus.ONLINE and not node.partitioned:
                return False
            self._go_online(node)
            logger.info("Operator forced %s online", node_id)
            return True

    def heal_partition(self, node_id: str) -> bool:
        """Return a degraded node to online. Returns False if not degraded."""
        with self._lock:
            node = self._require_node(node_id)
            if node.status != NodeStatus.DEGRADED:
                return False
            node.status = NodeStatus.ONLINE
            node.partitioned = False
            node.last_seen_at = self._scheduler.now()
            self._events.record(EventKind.NETWORK_HEAL, node_id, self._scheduler.now())
            logger.info("Partition healed on %s", node_id)
            return True

    def toggle_server(self) -> bool:
        """Flip the server flag. Returns the new value."""
        with self._lock:
            if self._server_online:
                self._server_down()
            else:
                self._server_up()
            logger.info("Operator toggled server %s", "online" if self._server_online else "offline")
            return self._server_online

    @property
    def server_online(self) -> bool:
        with self._lock:
            return self._server_online

    # ------------------------------------------------------------------
    # Simulation timers
    # ------------------------------------------------------------------

    def _inject_faults(self) -> None:
        actions = self._injector.plan(list(self._nodes.values()), self._server_online)
        for action in actions:
            self._apply_fault(action)

    def _apply_fault(self, action: FaultAction) -> None:
        if action.kind == FaultKind.SERVER_OUTAGE:
            if not self._server_online:
                return
            self._server_down()
            delay = action.recovery_delay_s or 0.0
            self._scheduler.call_later(delay, self._restore_server, "server-restore")
            logger.info("Injected server outage (recovery in %.1fs)", delay)
            return

        node = self._nodes[action.node_id]
        if action.kind == FaultKind.DROP and node.status == NodeStatus.ONLINE:
            self._go_offline(node)
        elif action.kind == FaultKind.RECONNECT and node.status == NodeStatus.OFFLINE:
            self._go_online(node)
        elif action.kind == FaultKind.PARTITION and node.status == NodeStatus.ONLINE:
            node.status = NodeStatus.DEGRADED
            node.partitioned = True
            self._events.record(EventKind.NETWORK_PARTITION, node.node_id, self._scheduler.now())
        else:
            return
        logger.info("Injected %s on %s", action.kind.value, action.node_id)

    def _restore_server(self) -> None:
        if self._server_online:
            return
        self._server_up()
        logger.info("Server restored")

    def _refresh_statuses(self) -> None:
        now = self._scheduler.now()
        for node in self._nodes.values():
            if node.status == NodeStatus.ONLINE:
                node.last_seen_at = now

    # ------------------------------------------------------------------
    # State transitions (caller holds the lock)
    # ------------------------------------------------------------------

    def _go_offline(self, node: NetworkNode) -> None:
        node.status = NodeStatus.OFFLINE
        self._events.record(EventKind.NODE_LEAVE, node.node_id, self._scheduler.now())

    def _go_online(self, node: NetworkNode) -> None:
        node.status = NodeStatus.ONLINE
        node.partitioned = False
        node.last_seen_at = self._scheduler.now()
        self._events.record(EventKind.NODE_JOIN, node.node_id, self._scheduler.now())

    def _server_down(self) -> None:
        self._server_online = False
        self._events.record(EventKind.NODE_LEAVE, SERVER_NODE_ID, self._scheduler.now())

    def _server_up(self) -> None:
        self._server_online = True
        self._events.record(EventKind.NODE_JOIN, SERVER_NODE_ID, self._scheduler.now())

    def _require_node(self, node_id: str) -> NetworkNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise InvalidReference(node_id)
        return node

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    def log_event(
        self,
        kind: EventKind,
        node_id: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> NetworkEvent:
        """Record an event on behalf of a composing caller (e.g. ledger sync)."""
        with self._lock:
            if node_id != SERVER_NODE_ID:
                self._require_node(node_id)
            return self._events.record(kind, node_id, self._scheduler.now(), payload)

    def get_nodes(self) -> list[NetworkNode]:
        with self._lock:
            return [node.snapshot() for node in self._nodes.values()]

    def get_node(self, node_id: str) -> Optional[NetworkNode]:
        with self._lock:
            node = self._nodes.get(node_id)
            return node.snapshot() if node else None

    def get_messages(self, limit: int = 50) -> list[NetworkMessage]:
        """Most-recent-first message history."""
        with self._lock:
            return [m.snapshot() for m in list(self._messages)[: max(limit, 0)]]

    def get_message(self, message_id: str) -> Optional[NetworkMessage]:
        with self._lock:
            for message in self._messages:
                if message.message_id == message_id:
                    return message.snapshot()
            return None

    def get_events(self, limit: int = 20) -> list[NetworkEvent]:
        """Most-recent-first event slice."""
        with self._lock:
            return self._events.recent(limit)

    def stats(self) -> dict:
        with self._lock:
            nodes = list(self._nodes.values())
            total = len(nodes)
            online = sum(1 for n in nodes if n.status == NodeStatus.ONLINE)
            degraded = sum(1 for n in nodes if n.status == NodeStatus.DEGRADED)
            offline = sum(1 for n in nodes if n.status == NodeStatus.OFFLINE)
            return {
                "total_nodes": total,
                "online_nodes": online,
                "degraded_nodes": degraded,
                "offline_nodes": offline,
                "server_online": self._server_online,
                "total_messages": len(self._messages),
                "partition_count": sum(1 for n in nodes if n.partitioned),
                "network_health": online / total if total else 0.0,
            }

    def visualization_data(self) -> dict:
        """Topology view: node positions and statuses plus the server flag."""
        with self._lock:
            return {
                "server_online": self._server_online,
                "nodes": [
                    {
                        "node_id": n.node_id,
                        "name": n.display_name,
                        "role": n.role.value,
                        "status": n.status.value,
                        "partitioned": n.partitioned,
                        "x": n.position[0],
                        "y": n.position[1],
                    }
                    for n in self._nodes.values()
                ],
            }
