"""Tests for the ordered Merkle tree."""

import pytest

from commsync.crypto.merkle import EMPTY_ROOT, MerkleTree
from commsync.crypto.provider import Sha256CryptoProvider, SimulatedCryptoProvider


@pytest.fixture
def provider() -> SimulatedCryptoProvider:
    return SimulatedCryptoProvider()


def _pair(provider, left: str, right: str) -> str:
    return provider.hash(f"{left}{right}".encode("utf-8"))


class TestMerkleTree:
    def test_empty_tree_has_sentinel_root(self, provider) -> None:
        assert MerkleTree(provider).compute_root() == EMPTY_ROOT

    def test_single_leaf_is_its_own_root(self, provider) -> None:
        assert MerkleTree.root_of(provider, ["abcd1234"]) == "abcd1234"

    def test_two_leaves(self, provider) -> None:
        root = MerkleTree.root_of(provider, ["aa", "bb"])
        assert root == _pair(provider, "aa", "bb")

    def test_odd_leaf_is_duplicated_not_promoted(self, provider) -> None:
        root = MerkleTree.root_of(provider, ["aa", "bb", "cc"])
        left = _pair(provider, "aa", "bb")
        right = _pair(provider, "cc", "cc")
        assert root == _pair(provider, left, right)

    def test_duplicated_tail_shares_root(self, provider) -> None:
        # Known ambiguity of the self-pairing rule, kept for compatibility.
        assert MerkleTree.root_of(provider, ["aa", "bb", "cc"]) == MerkleTree.root_of(
            provider, ["aa", "bb", "cc", "cc"]
        )

    def test_order_matters(self, provider) -> None:
        assert MerkleTree.root_of(provider, ["aa", "bb"]) != MerkleTree.root_of(
            provider, ["bb", "aa"]
        )

    def test_deterministic(self) -> None:
        provider = Sha256CryptoProvider()
        leaves = [provider.hash(bytes([i])) for i in range(5)]
        assert MerkleTree.root_of(provider, leaves) == MerkleTree.root_of(provider, leaves)

    def test_cannot_add_after_compute(self, provider) -> None:
        tree = MerkleTree(provider)
        tree.add_leaf("aa")
        tree.compute_root()
        with pytest.raises(RuntimeError):
            tree.add_leaf("bb")


class TestInclusionProof:
    def test_proof_verifies(self, provider) -> None:
        tree = MerkleTree(provider)
        for leaf in ("aa", "bb", "cc", "dd", "ee"):
            tree.add_leaf(leaf)
        root = tree.compute_root()

        for leaf in ("aa", "cc", "ee"):
            proof = tree.inclusion_proof(leaf)
            assert proof is not None
            assert proof.root == root
            assert tree.verify_proof(proof)

    def test_missing_leaf_no_proof(self, provider) -> None:
        tree = MerkleTree(provider)
        tree.add_leaf("aa")
        tree.compute_root()
        assert tree.inclusion_proof("zz") is None

    def test_proof_requires_compute(self, provider) -> None:
        tree = MerkleTree(provider)
        tree.add_leaf("aa")
        with pytest.raises(RuntimeError):
            tree.inclusion_proof("aa")

    def test_forged_path_fails(self, provider) -> None:
        tree = MerkleTree(provider)
        tree.add_leaf("aa")
        tree.add_leaf("bb")
        tree.compute_root()
        proof = tree.inclusion_proof("aa")
        forged = type(proof)(leaf_hash="zz", path=proof.path, root=proof.root)
        assert not tree.verify_proof(forged)
