"""Tests for the message ledger — proves chain invariants hold."""

import dataclasses
import itertools
import threading

import pytest

from commsync.crypto.provider import Sha256CryptoProvider, SimulatedCryptoProvider
from commsync.errors import IntegrityError, StructuralError
from commsync.ledger.chain import Ledger
from commsync.models.ledger import (
    GENESIS_HASH,
    GENESIS_PREVIOUS_HASH,
    Block,
    LedgerMessage,
)


@pytest.fixture
def provider() -> SimulatedCryptoProvider:
    return SimulatedCryptoProvider()


@pytest.fixture
def ledger(provider) -> Ledger:
    ticks = itertools.count(1_700_000_000_000, 1000)
    return Ledger("CMD-001", provider, clock=lambda: next(ticks))


def _message(provider, n: int, sender: str = "CMD-001") -> LedgerMessage:
    return LedgerMessage.create(
        provider,
        f"report {n}".encode("utf-8"),
        sender_id=sender,
        recipient_id="FIELD-001",
        vector_clock={sender: n},
        signing_key="RSA-PRIV-TEST",
        timestamp=1_700_000_000_000 + n,
        message_id=f"m-{n}",
    )


class TestGenesis:
    def test_starts_with_genesis_block(self, ledger: Ledger) -> None:
        chain = ledger.get_chain()
        assert len(chain) == 1
        genesis = chain[0]
        assert genesis.index == 0
        assert genesis.previous_hash == GENESIS_PREVIOUS_HASH
        assert genesis.hash == GENESIS_HASH
        assert genesis.messages == ()

    def test_empty_chain_is_valid(self, ledger: Ledger) -> None:
        assert ledger.validate()


class TestSubmit:
    def test_commits_immediately_by_default(self, ledger: Ledger, provider) -> None:
        ledger.submit(_message(provider, 1))
        assert len(ledger.get_chain()) == 2
        assert ledger.pending == []
        block = ledger.latest_block()
        assert block.index == 1
        assert block.mined_by == "CMD-001"
        assert [m.message_id for m in block.messages] == ["m-1"]

    def test_blocks_link_by_hash(self, ledger: Ledger, provider) -> None:
        for n in range(1, 4):
            ledger.submit(_message(provider, n))
        chain = ledger.get_chain()
        for k in range(1, len(chain)):
            assert chain[k].index == k
            assert chain[k].previous_hash == chain[k - 1].hash

    def test_valid_after_any_sequence(self, ledger: Ledger, provider) -> None:
        for n in range(1, 8):
            ledger.submit(_message(provider, n, sender=f"NODE-{n % 3}"))
            assert ledger.validate()

    def test_hash_mismatch_rejected(self, ledger: Ledger, provider) -> None:
        good = _message(provider, 1)
        bad = dataclasses.replace(good, content_hash="deadbeef")
        blocks_before = len(ledger.get_chain())

        with pytest.raises(IntegrityError) as excinfo:
            ledger.submit(bad)

        assert excinfo.value.message_id == "m-1"
        assert len(ledger.get_chain()) == blocks_before
        assert ledger.pending == []

    def test_content_changed_after_hashing_rejected(self, ledger: Ledger, provider) -> None:
        bad = dataclasses.replace(_message(provider, 1), content=b"forged")
        with pytest.raises(IntegrityError):
            ledger.submit(bad)

    def test_all_messages_in_commit_order(self, ledger: Ledger, provider) -> None:
        for n in range(1, 4):
            ledger.submit(_message(provider, n))
        assert [m.message_id for m in ledger.all_messages()] == ["m-1", "m-2", "m-3"]

    def test_concurrent_submits_get_unique_indices(self, provider) -> None:
        ledger = Ledger("CMD-001", provider)
        messages = [_message(provider, n) for n in range(200)]

        def worker(batch) -> None:
            for m in batch:
                ledger.submit(m)

        threads = [threading.Thread(target=worker, args=(messages[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        chain = ledger.get_chain()
        assert [b.index for b in chain] == list(range(201))
        assert ledger.validate()


class TestBatching:
    def test_batch_waits_until_full(self, provider) -> None:
        ledger = Ledger("CMD-001", provider, commit_batch_size=3)
        ledger.submit(_message(provider, 1))
        ledger.submit(_message(provider, 2))
        assert len(ledger.get_chain()) == 1
        assert len(ledger.pending) == 2

        ledger.submit(_message(provider, 3))
        assert len(ledger.get_chain()) == 2
        assert len(ledger.latest_block().messages) == 3
        assert ledger.validate()

    def test_flush_commits_partial_batch(self, provider) -> None:
        ledger = Ledger("CMD-001", provider, commit_batch_size=5)
        ledger.submit(_message(provider, 1))
        block = ledger.flush()
        assert block is not None and len(block.messages) == 1
        assert ledger.flush() is None

    def test_invalid_batch_size(self, provider) -> None:
        with pytest.raises(ValueError):
            Ledger("CMD-001", provider, commit_batch_size=0)


class TestTamperDetection:
    def test_content_mutation_detected(self, ledger: Ledger, provider) -> None:
        for n in range(1, 4):
            ledger.submit(_message(provider, n))
        stored = ledger.get_chain()[2].messages[0]
        object.__setattr__(stored, "content", b"forged orders")
        assert not ledger.validate()

    def test_multi_message_block_mutation_detected(self, provider) -> None:
        ledger = Ledger("CMD-001", provider, commit_batch_size=3)
        for n in range(1, 4):
            ledger.submit(_message(provider, n))
        stored = ledger.latest_block().messages[2]
        object.__setattr__(stored, "content", b"forged orders")
        assert not ledger.validate()

    def test_block_field_mutation_detected(self, ledger: Ledger, provider) -> None:
        ledger.submit(_message(provider, 1))
        ledger.submit(_message(provider, 2))
        block = ledger.get_chain()[1]
        object.__setattr__(block, "timestamp", block.timestamp + 1)
        assert not ledger.validate()

    def test_broken_link_detected(self, ledger: Ledger, provider) -> None:
        ledger.submit(_message(provider, 1))
        ledger.submit(_message(provider, 2))
        block = ledger.get_chain()[1]
        object.__setattr__(block, "hash", "ffffffff")
        assert not ledger.validate()

    def test_stats_report_invalid(self, ledger: Ledger, provider) -> None:
        ledger.submit(_message(provider, 1))
        object.__setattr__(ledger.latest_block().messages[0], "content", b"x")
        assert ledger.stats()["is_valid"] is False


class TestSync:
    def _peer_with(self, provider, count: int) -> Ledger:
        peer = Ledger("FIELD-001", provider)
        for n in range(1, count + 1):
            peer.submit(_message(provider, n, sender="FIELD-001"))
        return peer

    def test_adopts_longer_chain(self, ledger: Ledger, provider) -> None:
        peer = self._peer_with(provider, 3)
        assert ledger.sync(peer.get_chain())
        assert len(ledger.get_chain()) == 4
        assert ledger.latest_block().mined_by == "FIELD-001"
        assert ledger.validate()

    def test_rejects_equal_length(self, ledger: Ledger, provider) -> None:
        ledger.submit(_message(provider, 1))
        peer = self._peer_with(provider, 1)
        local = ledger.get_chain()
        assert not ledger.sync(peer.get_chain())
        assert ledger.get_chain() == local

    def test_rejects_shorter(self, ledger: Ledger, provider) -> None:
        for n in range(1, 4):
            ledger.submit(_message(provider, n))
        peer = self._peer_with(provider, 1)
        assert not ledger.sync(peer.get_chain())
        assert len(ledger.get_chain()) == 4

    def test_rejects_empty_candidate(self, ledger: Ledger) -> None:
        assert not ledger.sync([])

    def test_malformed_genesis_raises(self, ledger: Ledger, provider) -> None:
        peer = self._peer_with(provider, 2)
        candidate = peer.get_chain()
        candidate[0] = dataclasses.replace(candidate[0], previous_hash="not-genesis")
        local = ledger.get_chain()
        with pytest.raises(StructuralError):
            ledger.sync(candidate)
        assert ledger.get_chain() == local

    def test_accepts_longer_chain_without_full_validation(self, ledger: Ledger, provider) -> None:
        # Longest-chain-wins only checks structure; trusted peers assumed.
        peer = self._peer_with(provider, 2)
        candidate = peer.get_chain()
        candidate.append(
            Block(
                index=99,
                timestamp=0,
                messages=(),
                previous_hash="bogus",
                hash="bogus",
                merkle_root="bogus",
                mined_by="ROGUE",
            )
        )
        assert ledger.sync(candidate)
        assert not ledger.validate()


class TestStats:
    def test_counts(self, provider) -> None:
        ledger = Ledger("CMD-001", provider, commit_batch_size=2)
        for n in range(1, 4):
            ledger.submit(_message(provider, n))
        assert ledger.stats() == {
            "block_count": 2,
            "message_count": 2,
            "pending_count": 1,
            "is_valid": True,
        }


class TestWithSha256:
    def test_round_trip(self) -> None:
        provider = Sha256CryptoProvider()
        ledger = Ledger("CMD-001", provider, commit_batch_size=3)
        for n in range(1, 7):
            ledger.submit(_message(provider, n))
        assert ledger.latest_block().hash.startswith("sha256:")
        assert ledger.validate()


class TestImmutability:
    def test_committed_clock_cannot_be_changed_by_readers(self, ledger: Ledger, provider) -> None:
        ledger.submit(_message(provider, 1))
        stored = ledger.get_chain()[1].messages[0]
        with pytest.raises(TypeError):
            stored.vector_clock["CMD-001"] = 99  # type: ignore[index]
        assert ledger.get_chain()[1].messages[0].vector_clock == {"CMD-001": 1}

    def test_clock_detached_from_caller(self, provider) -> None:
        stamp = {"CMD-001": 4, "FIELD-001": 2}
        message = LedgerMessage.create(
            provider,
            b"orders",
            sender_id="CMD-001",
            recipient_id="FIELD-001",
            vector_clock=stamp,
            signing_key="RSA-PRIV-TEST",
        )
        stamp["CMD-001"] = 99
        assert message.vector_clock == {"CMD-001": 4, "FIELD-001": 2}

    def test_replace_keeps_clock_read_only(self, provider) -> None:
        message = dataclasses.replace(_message(provider, 1), vector_clock={"CMD-001": 7})
        with pytest.raises(TypeError):
            message.vector_clock["CMD-001"] = 8  # type: ignore[index]
