"""Ledger data models — signed messages and the blocks that commit them.

Both types are immutable once constructed. A message is owned by the
block that commits it; a block is owned by exactly one ledger.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from commsync.crypto.provider import CryptoProvider, message_digest


# Sentinels for the genesis block. Genesis is trusted structurally and is
# never recomputed through a hash function.
GENESIS_PREVIOUS_HASH = "0"
GENESIS_HASH = "0" * 16
GENESIS_MINER = "GENESIS"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class LedgerMessage:
    """A ledger-bound message.

    content_hash must equal hash(content, timestamp, sender_id) as computed
    by the crypto provider; the ledger rejects messages where it does not.
    content may already be encrypted (see `encrypted`). vector_clock is
    stored as a read-only copy.
    """
    message_id: str
    content: bytes
    sender_id: str
    recipient_id: str
    timestamp: int  # Milliseconds since epoch
    vector_clock: Mapping[str, int]
    content_hash: str
    signature: str
    encrypted: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "vector_clock", MappingProxyType(dict(self.vector_clock)))

    @staticmethod
    def create(
        provider: CryptoProvider,
        content: bytes,
        sender_id: str,
        recipient_id: str,
        vector_clock: Mapping[str, int],
        signing_key: str,
        encrypted: bool = False,
        timestamp: Optional[int] = None,
        message_id: Optional[str] = None,
    ) -> LedgerMessage:
        """Create a message with computed content hash and signature."""
        ts = now_ms() if timestamp is None else timestamp
        return LedgerMessage(
            message_id=message_id or f"lm-{uuid.uuid4().hex[:12]}",
            content=content,
            sender_id=sender_id,
            recipient_id=recipient_id,
            timestamp=ts,
            vector_clock=vector_clock,
            content_hash=message_digest(provider, content, ts, sender_id),
            signature=provider.sign(content, signing_key),
            encrypted=encrypted,
        )


@dataclass(frozen=True)
class Block:
    """A batch commitment linked to its predecessor.

    hash is a pure function of (index, timestamp, previous_hash,
    merkle_root); merkle_root is a pure function of the ordered message
    hashes.
    """
    index: int
    timestamp: int
    messages: tuple[LedgerMessage, ...]
    previous_hash: str
    hash: str
    merkle_root: str
    mined_by: str

    def canonical_fields(self) -> tuple[str, ...]:
        """Return the hashed fields in canonical order."""
        return (
            str(self.index),
            str(self.timestamp),
            self.previous_hash,
            self.merkle_root,
        )

    @staticmethod
    def genesis(timestamp: Optional[int] = None) -> Block:
        return Block(
            index=0,
            timestamp=now_ms() if timestamp is None else timestamp,
            messages=(),
            previous_hash=GENESIS_PREVIOUS_HASH,
            hash=GENESIS_HASH,
            merkle_root=GENESIS_HASH,
            mined_by=GENESIS_MINER,
        )
