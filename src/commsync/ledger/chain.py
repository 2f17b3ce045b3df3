"""Message ledger — an append-only, hash-linked chain of message blocks.

Every accepted message is checked against its carried content hash,
queued, and committed into a block. Each block commits its messages
with an ordered Merkle root and links to its predecessor by hash.

Invariants enforced:
- Block k has index k; indices are dense and never reused.
- previous_hash of block k equals hash of block k-1.
- hash = H(index | timestamp | previous_hash | merkle_root).
- A message with a mismatched content hash is rejected, never repaired.
- submit and the commit it triggers are atomic with respect to other
  submits (one re-entrant lock per ledger).

Sync is longest-chain-wins with only a structural check on the candidate
(non-empty, genesis sentinel). There is no proof-of-work or stake, so
this is only sound among trusted nodes.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Callable, Optional, Sequence

from commsync.crypto.merkle import EMPTY_ROOT, MerkleTree
from commsync.crypto.provider import CryptoProvider, message_digest
from commsync.errors import IntegrityError, StructuralError
from commsync.models.ledger import (
    GENESIS_PREVIOUS_HASH,
    Block,
    LedgerMessage,
    now_ms,
)

logger = logging.getLogger(__name__)


class Ledger:
    """One node's message chain.

    Usage:
        ledger = Ledger("CMD-001", provider)
        ledger.submit(message)       # raises IntegrityError on hash mismatch
        ledger.validate()            # full re-verification
        ledger.sync(peer.get_chain())
    """

    def __init__(
        self,
        node_id: str,
        provider: CryptoProvider,
        commit_batch_size: int = 1,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if commit_batch_size < 1:
            raise ValueError(f"commit_batch_size must be >= 1, got {commit_batch_size}")
        self._node_id = node_id
        self._provider = provider
        self._batch_size = commit_batch_size
        self._clock = clock
        self._lock = threading.RLock()
        self._chain: list[Block] = [Block.genesis(clock())]
        self._pending: list[LedgerMessage] = []

    @property
    def node_id(self) -> str:
        return self._node_id

    # ------------------------------------------------------------------
    # Ingestion and commit
    # ------------------------------------------------------------------

    def submit(self, message: LedgerMessage) -> None:
        """Accept a message and commit once the batch is full.

        Raises IntegrityError if the carried content hash does not match
        hash(content, timestamp, sender_id). The message is then neither
        queued nor committed.
        """
        expected = message_digest(
            self._provider, message.content, message.timestamp, message.sender_id
        )
        if message.content_hash != expected:
            logger.warning(
                "Rejected message %s from %s: content hash mismatch",
                message.message_id,
                message.sender_id,
            )
            raise IntegrityError(message.message_id, expected, message.content_hash)

        with self._lock:
            self._pending.append(message)
            if len(self._pending) >= self._batch_size:
                self._commit()

    def flush(self) -> Optional[Block]:
        """Commit any pending messages now. Returns the new block, if any."""
        with self._lock:
            if not self._pending:
                return None
            return self._commit()

    def _commit(self) -> Block:
        """Build a block from the whole pending queue. Caller holds the lock."""
        previous = self._chain[-1]
        index = len(self._chain)
        timestamp = self._clock()
        messages = tuple(self._pending)
        merkle_root = self._merkle_root(messages, recompute=False)
        unhashed = Block(
            index=index,
            timestamp=timestamp,
            messages=messages,
            previous_hash=previous.hash,
            hash="",
            merkle_root=merkle_root,
            mined_by=self._node_id,
        )
        block = dataclasses.replace(unhashed, hash=self._block_hash(unhashed))
        self._chain.append(block)
        self._pending = []
        logger.info(
            "Committed block %d with %d message(s) on %s", index, len(messages), self._node_id
        )
        return block

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def validate(self) -> bool:
        """Re-verify every non-genesis block.

        For each block: the message hashes are recomputed from content,
        the Merkle root is rebuilt from them, the block hash is
        recomputed, and the link to the predecessor is checked. Genesis
        is trusted structurally.
        """
        with self._lock:
            chain = list(self._chain)
        return self.validate_blocks(chain)

    def validate_blocks(self, chain: Sequence[Block]) -> bool:
        for i in range(1, len(chain)):
            block = chain[i]
            previous = chain[i - 1]
            if block.index != i:
                return False
            if block.previous_hash != previous.hash:
                return False
            if block.merkle_root != self._merkle_root(block.messages, recompute=True):
                return False
            if block.hash != self._block_hash(block):
                return False
        return True

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync(self, candidate: Sequence[Block]) -> bool:
        """Adopt a strictly longer candidate chain wholesale.

        Returns False, leaving the local chain unchanged, if the candidate
        is not strictly longer. Raises StructuralError if it is longer but
        fails the structural check.
        """
        with self._lock:
            if len(candidate) <= len(self._chain):
                logger.debug(
                    "Sync declined on %s: candidate length %d <= local %d",
                    self._node_id,
                    len(candidate),
                    len(self._chain),
                )
                return False
            self._check_structure(candidate)
            self._chain = list(candidate)
            logger.info("Adopted chain of length %d on %s", len(candidate), self._node_id)
            return True

    @staticmethod
    def _check_structure(candidate: Sequence[Block]) -> None:
        if not candidate:
            raise StructuralError("Candidate chain is empty")
        if candidate[0].previous_hash != GENESIS_PREVIOUS_HASH:
            raise StructuralError(
                f"Candidate genesis previous_hash {candidate[0].previous_hash!r} "
                f"!= sentinel {GENESIS_PREVIOUS_HASH!r}"
            )

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    def get_chain(self) -> list[Block]:
        with self._lock:
            return list(self._chain)

    def latest_block(self) -> Block:
        with self._lock:
            return self._chain[-1]

    def all_messages(self) -> list[LedgerMessage]:
        with self._lock:
            return [m for block in self._chain for m in block.messages]

    @property
    def pending(self) -> list[LedgerMessage]:
        with self._lock:
            return list(self._pending)

    def stats(self) -> dict:
        """Point-in-time snapshot. is_valid re-runs full validation."""
        with self._lock:
            return {
                "block_count": len(self._chain),
                "message_count": sum(len(b.messages) for b in self._chain),
                "pending_count": len(self._pending),
                "is_valid": self.validate(),
            }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _merkle_root(self, messages: Sequence[LedgerMessage], recompute: bool) -> str:
        if not messages:
            return EMPTY_ROOT
        if recompute:
            leaves = [
                message_digest(self._provider, m.content, m.timestamp, m.sender_id)
                for m in messages
            ]
        else:
            leaves = [m.content_hash for m in messages]
        return MerkleTree.root_of(self._provider, leaves)

    def _block_hash(self, block: Block) -> str:
        canonical = "|".join(block.canonical_fields())
        return self._provider.hash(canonical.encode("utf-8"))
