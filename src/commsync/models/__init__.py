"""Core data models for the comms core."""

from commsync.models.ledger import (
    GENESIS_HASH,
    GENESIS_MINER,
    GENESIS_PREVIOUS_HASH,
    Block,
    LedgerMessage,
)
from commsync.models.network import (
    SERVER_NODE_ID,
    DeliveryStatus,
    EventKind,
    MessageType,
    NetworkEvent,
    NetworkMessage,
    NetworkNode,
    NodeRole,
    NodeStatus,
    Priority,
)

__all__ = [
    "GENESIS_HASH",
    "GENESIS_MINER",
    "GENESIS_PREVIOUS_HASH",
    "Block",
    "LedgerMessage",
    "SERVER_NODE_ID",
    "DeliveryStatus",
    "EventKind",
    "MessageType",
    "NetworkEvent",
    "NetworkMessage",
    "NetworkNode",
    "NodeRole",
    "NodeStatus",
    "Priority",
]
