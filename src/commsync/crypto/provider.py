"""Crypto provider boundary for the comms core.

The core engines never implement cryptography themselves. They call a
provider exposing five pure functions: hash, sign, verify, encrypt and
decrypt. Digests and signatures are opaque, equality-comparable strings;
callers must not assume a digest size or encoding.

Two providers ship here:

- SimulatedCryptoProvider reproduces the field demonstration scheme
  (32-bit rolling hash, XOR stream "encryption", hash-derived signatures).
  It is reversible and offers no security.
- Sha256CryptoProvider uses SHA-256 digests and HMAC-SHA256 signatures.
  It is the drop-in replacement when stable, collision-resistant digests
  are wanted. Its stream cipher is still a demonstration.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@runtime_checkable
class CryptoProvider(Protocol):
    """The five-function contract consumed by the ledger and callers."""

    def hash(self, data: bytes) -> str: ...

    def sign(self, data: bytes, key: str) -> str: ...

    def verify(self, data: bytes, signature: str, key: str) -> bool: ...

    def encrypt(self, data: bytes, key: str) -> bytes: ...

    def decrypt(self, data: bytes, key: str) -> bytes: ...


@dataclass(frozen=True)
class KeyPair:
    """A node's key material. The private key derives from the public key."""
    public_key: str
    private_key: str


def generate_key_pair(node_id: str) -> KeyPair:
    """Derive a deterministic key pair from a node id."""
    seed = sum(ord(c) for c in node_id)
    public_key = f"RSA-PUB-{seed:08X}"
    return KeyPair(public_key=public_key, private_key=private_key_for(public_key))


def private_key_for(public_key: str) -> str:
    """Map a public key to its paired private key."""
    return public_key.replace("PUB", "PRIV", 1)


def message_digest(
    provider: CryptoProvider,
    content: bytes,
    timestamp: int,
    sender_id: str,
) -> str:
    """Content hash carried by ledger messages: hash(content, timestamp, sender)."""
    return provider.hash(content + str(timestamp).encode("utf-8") + sender_id.encode("utf-8"))


class SimulatedCryptoProvider:
    """Demonstration crypto compatible with the legacy field kit. Not secure."""

    def hash(self, data: bytes) -> str:
        h = 0
        for byte in data:
            h = ((h << 5) - h + byte) & 0xFFFFFFFF
        # Interpret as signed 32-bit before taking the magnitude
        if h >= 0x80000000:
            h -= 0x100000000
        return f"{abs(h):08x}"

    def sign(self, data: bytes, key: str) -> str:
        digest = self.hash(data + key.encode("utf-8"))
        return f"SIG-{digest[:16].upper()}"

    def verify(self, data: bytes, signature: str, key: str) -> bool:
        expected = self.sign(data, private_key_for(key))
        return hmac.compare_digest(signature, expected)

    def encrypt(self, data: bytes, key: str) -> bytes:
        return base64.b64encode(_xor_stream(data, key))

    def decrypt(self, data: bytes, key: str) -> bytes:
        return _xor_stream(base64.b64decode(data), key)


class Sha256CryptoProvider:
    """SHA-256 digests and HMAC-SHA256 signatures."""

    PREFIX = "sha256:"

    def hash(self, data: bytes) -> str:
        return f"{self.PREFIX}{hashlib.sha256(data).hexdigest()}"

    def sign(self, data: bytes, key: str) -> str:
        mac = hmac.new(key.encode("utf-8"), data, hashlib.sha256).hexdigest()
        return f"hmac-sha256:{mac}"

    def verify(self, data: bytes, signature: str, key: str) -> bool:
        return hmac.compare_digest(signature, self.sign(data, private_key_for(key)))

    def encrypt(self, data: bytes, key: str) -> bytes:
        return base64.b64encode(_keystream_xor(data, key))

    def decrypt(self, data: bytes, key: str) -> bytes:
        return _keystream_xor(base64.b64decode(data), key)


def _xor_stream(data: bytes, key: str) -> bytes:
    seed = sum(ord(c) for c in key)
    return bytes(b ^ ((seed + i) % 256) for i, b in enumerate(data))


def _keystream_xor(data: bytes, key: str) -> bytes:
    out = bytearray()
    counter = 0
    while len(out) < len(data):
        block = hashlib.sha256(f"{key}:{counter}".encode("utf-8")).digest()
        out.extend(block)
        counter += 1
    return bytes(b ^ k for b, k in zip(data, out))
