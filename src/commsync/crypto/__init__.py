"""Crypto boundary: provider contract, simulated and SHA-256 providers, Merkle tree."""

from commsync.crypto.merkle import EMPTY_ROOT, MerkleProof, MerkleTree
from commsync.crypto.provider import (
    CryptoProvider,
    KeyPair,
    Sha256CryptoProvider,
    SimulatedCryptoProvider,
    generate_key_pair,
    message_digest,
)

__all__ = [
    "EMPTY_ROOT",
    "MerkleProof",
    "MerkleTree",
    "CryptoProvider",
    "KeyPair",
    "Sha256CryptoProvider",
    "SimulatedCryptoProvider",
    "generate_key_pair",
    "message_digest",
]
