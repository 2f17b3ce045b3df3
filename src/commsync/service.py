"""Comms service — per-node facade composing the three engines.

The vector clock, ledger and network simulator never call each other.
This facade is where they meet for one node:
- Sending: tick the clock, hand the message to the simulator, then sign
  and submit a copy to the node's ledger.
- Receiving: merge the delivered message's clock and decrypt its content.
- Ledger sync: adopt a peer's longer chain, recorded as sync events.

All operations produce typed results. Engine errors (IntegrityError,
StructuralError, InvalidReference) are reported in the result, never
raised past this layer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from commsync.clock.vector_clock import VectorClockManager
from commsync.crypto.provider import (
    CryptoProvider,
    KeyPair,
    SimulatedCryptoProvider,
    generate_key_pair,
)
from commsync.errors import CommsError, InvalidReference
from commsync.ledger.chain import Ledger
from commsync.models.ledger import LedgerMessage
from commsync.models.network import (
    DeliveryStatus,
    EventKind,
    MessageType,
    NetworkMessage,
    Priority,
)
from commsync.network.simulator import NetworkSimulator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class CommsService:
    """One node's view of the comms system.

    Usage:
        network = NetworkSimulator(config)
        cmd = CommsService("CMD-001", network)
        result = cmd.send_message("FIELD-001", "Move to grid 7", priority=Priority.HIGH)
        network.advance(5.0)
        field_unit.receive(network.get_message(result.data["message_id"]))
    """

    def __init__(
        self,
        node_id: str,
        network: NetworkSimulator,
        provider: Optional[CryptoProvider] = None,
        commit_batch_size: int = 1,
        key_pair: Optional[KeyPair] = None,
    ) -> None:
        node = network.get_node(node_id)
        if node is None:
            raise InvalidReference(node_id)
        self._node_id = node_id
        self._encryption_key = node.encryption_key
        self._network = network
        self._provider: CryptoProvider = provider or SimulatedCryptoProvider()
        self._keys = key_pair or generate_key_pair(node_id)
        peers = [n.node_id for n in network.get_nodes() if n.node_id != node_id]
        self._clock = VectorClockManager(node_id, peers)
        self._ledger = Ledger(node_id, self._provider, commit_batch_size=commit_batch_size)

    @property
    def node_id(self) -> str:
        return self._node_id

    @property
    def clock(self) -> VectorClockManager:
        return self._clock

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def key_pair(self) -> KeyPair:
        return self._keys

    def send_message(
        self,
        recipient_id: str,
        content: str,
        priority: Priority = Priority.MEDIUM,
        message_type: MessageType = MessageType.TEXT,
        encrypt: bool = True,
    ) -> ServiceResult:
        """Stamp, transmit and record a message."""
        recipient = self._network.get_node(recipient_id)
        if recipient is None:
            return ServiceResult(success=False, errors=[f"Unknown node: {recipient_id}"])

        stamp = self._clock.tick()
        payload = content.encode("utf-8")
        if encrypt:
            payload = self._provider.encrypt(payload, recipient.encryption_key)
        wire_content = payload.decode("ascii") if encrypt else content

        try:
            message_id = self._network.send(
                self._node_id,
                recipient_id,
                wire_content,
                stamp,
                priority=priority,
                message_type=message_type,
                encrypted=encrypt,
            )
            record = LedgerMessage.create(
                self._provider,
                payload,
                sender_id=self._node_id,
                recipient_id=recipient_id,
                vector_clock=stamp,
                signing_key=self._keys.private_key,
                encrypted=encrypt,
                message_id=message_id,
            )
            self._ledger.submit(record)
        except CommsError as exc:
            logger.warning("Send from %s failed: %s", self._node_id, exc)
            return ServiceResult(success=False, errors=[str(exc)])

        return ServiceResult(
            success=True,
            data={
                "message_id": message_id,
                "vector_clock": stamp,
                "block_index": self._ledger.latest_block().index,
            },
        )

    def receive(self, message: NetworkMessage) -> ServiceResult:
        """Observe a delivered message: merge its clock and open its content."""
        if message.recipient_id != self._node_id:
            return ServiceResult(
                success=False,
                errors=[f"{message.message_id} is addressed to {message.recipient_id}"],
            )
        if message.delivery_status not in (DeliveryStatus.DELIVERED, DeliveryStatus.ACKNOWLEDGED):
            return ServiceResult(
                success=False,
                errors=[
                    f"{message.message_id} not delivered "
                    f"(status: {message.delivery_status.value})"
                ],
            )

        stamp = self._clock.update(message.vector_clock)
        content = message.content
        if message.encrypted:
            content = self._provider.decrypt(
                message.content.encode("ascii"), self._encryption_key
            ).decode("utf-8")
        return ServiceResult(
            success=True,
            data={"message_id": message.message_id, "content": content, "vector_clock": stamp},
        )

    def verify_signature(self, record: LedgerMessage, sender_public_key: str) -> bool:
        """Check a ledger record's signature against the sender's public key."""
        return self._provider.verify(record.content, record.signature, sender_public_key)

    def sync_ledger_from(self, peer: CommsService) -> ServiceResult:
        """Adopt the peer's chain if it is strictly longer."""
        self._network.log_event(EventKind.SYNC_STARTED, self._node_id, {"peer": peer.node_id})
        try:
            adopted = self._ledger.sync(peer.ledger.get_chain())
        except CommsError as exc:
            logger.warning("Sync %s <- %s rejected: %s", self._node_id, peer.node_id, exc)
            return ServiceResult(success=False, errors=[str(exc)])
        length = len(self._ledger.get_chain())
        self._network.log_event(
            EventKind.SYNC_COMPLETED,
            self._node_id,
            {"peer": peer.node_id, "adopted": adopted, "chain_length": length},
        )
        return ServiceResult(success=True, data={"adopted": adopted, "chain_length": length})

    def status(self) -> dict[str, Any]:
        return {
            "node_id": self._node_id,
            "vector_clock": self._clock.clock(),
            "ledger": self._ledger.stats(),
            "network": self._network.stats(),
        }
