"""Ordered Merkle tree over block message hashes.

Leaves keep their insertion order (commit order); they are not sorted.
Adjacent nodes are hashed pairwise, level by level. An odd node at any
level is paired with itself rather than promoted unchanged. Duplicating
the last node means a list ending in [x] and one ending in [x, x] share a
root; the rule is kept so roots stay compatible with existing chains.

A single leaf is its own root. An empty tree has the sentinel root
EMPTY_ROOT.
"""

from __future__ import annotations

from dataclasses import dataclass

from commsync.crypto.provider import CryptoProvider


EMPTY_ROOT = "0" * 16


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf."""
    leaf_hash: str
    path: list[tuple[str, str]]  # List of (sibling_hash, position: "L" | "R")
    root: str


class MerkleTree:
    """A Merkle tree using the supplied provider's hash.

    Usage:
        tree = MerkleTree(provider)
        tree.add_leaf(message.content_hash)
        root = tree.compute_root()
        proof = tree.inclusion_proof(message.content_hash)
    """

    def __init__(self, provider: CryptoProvider) -> None:
        self._provider = provider
        self._leaves: list[str] = []
        self._tree: list[list[str]] = []
        self._computed = False

    @classmethod
    def root_of(cls, provider: CryptoProvider, leaves: list[str]) -> str:
        """Compute the root of an ordered leaf list in one call."""
        tree = cls(provider)
        for leaf in leaves:
            tree.add_leaf(leaf)
        return tree.compute_root()

    def add_leaf(self, leaf_hash: str) -> None:
        """Add a leaf hash. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        self._leaves.append(leaf_hash)

    def compute_root(self) -> str:
        if not self._leaves:
            self._computed = True
            return EMPTY_ROOT

        current_level = list(self._leaves)
        self._tree = [current_level]
        while len(current_level) > 1:
            next_level: list[str] = []
            for i in range(0, len(current_level), 2):
                left = current_level[i]
                right = current_level[i + 1] if i + 1 < len(current_level) else left
                next_level.append(self._hash_pair(left, right))
            self._tree.append(next_level)
            current_level = next_level

        self._computed = True
        return current_level[0]

    def inclusion_proof(self, leaf_hash: str) -> MerkleProof | None:
        """Generate an inclusion proof for the first occurrence of a leaf.

        Returns None if the leaf is not in the tree.
        Must call compute_root first.
        """
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")
        if not self._tree or leaf_hash not in self._tree[0]:
            return None

        current_idx = self._tree[0].index(leaf_hash)
        path: list[tuple[str, str]] = []
        for level in self._tree[:-1]:
            if current_idx % 2 == 0:
                sibling_idx = current_idx + 1
                if sibling_idx < len(level):
                    path.append((level[sibling_idx], "R"))
                else:
                    path.append((level[current_idx], "R"))  # Duplicate
            else:
                path.append((level[current_idx - 1], "L"))
            current_idx //= 2

        return MerkleProof(leaf_hash=leaf_hash, path=path, root=self._tree[-1][0])

    def verify_proof(self, proof: MerkleProof) -> bool:
        """Recompute the root from a proof path and compare."""
        node = proof.leaf_hash
        for sibling, position in proof.path:
            if position == "L":
                node = self._hash_pair(sibling, node)
            else:
                node = self._hash_pair(node, sibling)
        return node == proof.root

    def _hash_pair(self, left: str, right: str) -> str:
        return self._provider.hash(f"{left}{right}".encode("utf-8"))
