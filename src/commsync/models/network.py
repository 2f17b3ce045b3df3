"""Network simulation data models — nodes, messages and audit events."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional


class NodeStatus(str, enum.Enum):
    """Liveness of a network node."""
    ONLINE = "online"
    DEGRADED = "degraded"
    OFFLINE = "offline"


class NodeRole(str, enum.Enum):
    COMMAND = "command"
    FIELD = "field"
    RELAY = "relay"


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MessageType(str, enum.Enum):
    TEXT = "text"
    STATUS = "status"
    COMMAND = "command"
    ALERT = "alert"


class DeliveryStatus(str, enum.Enum):
    """Lifecycle of a transmitted message.

    pending -> delivered -> acknowledged, or pending -> failed.
    failed and acknowledged are terminal.
    """
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"
    ACKNOWLEDGED = "acknowledged"


class EventKind(str, enum.Enum):
    """Classification of network audit events."""
    NODE_JOIN = "node_join"
    NODE_LEAVE = "node_leave"
    MESSAGE_SENT = "message_sent"
    MESSAGE_RECEIVED = "message_received"
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    NETWORK_PARTITION = "network_partition"
    NETWORK_HEAL = "network_heal"


# Synthetic identity used for server outage events.
SERVER_NODE_ID = "SERVER"


@dataclass
class NetworkNode:
    """A roster member.

    Mutated only by the simulator (fault injection, status refresh,
    operator overrides). Never removed; only its status changes.
    """
    node_id: str
    display_name: str
    role: NodeRole
    encryption_key: str
    status: NodeStatus = NodeStatus.ONLINE
    last_seen_at: float = 0.0
    message_count: int = 0
    partitioned: bool = False
    position: tuple[float, float] = (0.0, 0.0)

    def snapshot(self) -> NetworkNode:
        """Detached copy for read models."""
        return NetworkNode(
            node_id=self.node_id,
            display_name=self.display_name,
            role=self.role,
            encryption_key=self.encryption_key,
            status=self.status,
            last_seen_at=self.last_seen_at,
            message_count=self.message_count,
            partitioned=self.partitioned,
            position=self.position,
        )


@dataclass
class NetworkMessage:
    """A message in transit. Only delivery_status changes after send."""
    message_id: str
    sender_id: str
    recipient_id: str
    content: str
    timestamp: float
    vector_clock: dict[str, int]
    priority: Priority = Priority.MEDIUM
    message_type: MessageType = MessageType.TEXT
    encrypted: bool = False
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING

    def snapshot(self) -> NetworkMessage:
        return NetworkMessage(
            message_id=self.message_id,
            sender_id=self.sender_id,
            recipient_id=self.recipient_id,
            content=self.content,
            timestamp=self.timestamp,
            vector_clock=dict(self.vector_clock),
            priority=self.priority,
            message_type=self.message_type,
            encrypted=self.encrypted,
            delivery_status=self.delivery_status,
        )


@dataclass(frozen=True)
class NetworkEvent:
    """An immutable audit record. payload is stored as a read-only copy."""
    event_id: str
    kind: EventKind
    node_id: str
    timestamp: float
    payload: Optional[Mapping[str, Any]] = field(default=None)

    def __post_init__(self) -> None:
        if self.payload is not None:
            object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))
