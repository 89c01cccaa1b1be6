"""Ed25519 identity for the agent itself.

The public key doubles as the Matrix username when the agent registers
itself, and a double SHA-256 of the private key is the fallback password.
"""

import hashlib

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey


class Key:
    """Agent key pair."""

    def __init__(self, seed: str | None = None):
        """Load the key from a hex-encoded 32-byte seed, or generate one.

        Raises:
            ValueError if seed is not 32 bytes of hex
        """
        if seed:
            private_bytes = bytes.fromhex(seed)
            if len(private_bytes) != 32:
                raise ValueError("Seed must be 32 bytes of hex")
            self._private_key = Ed25519PrivateKey.from_private_bytes(private_bytes)
        else:
            self._private_key = Ed25519PrivateKey.generate()

    @property
    def private(self) -> str:
        raw = self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return raw.hex()

    @property
    def pubkey(self) -> str:
        raw = self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return raw.hex()

    @property
    def hashpass(self) -> str:
        """Password derived from the private key. Not the key itself."""
        first = hashlib.sha256(self.private.encode()).hexdigest()
        return hashlib.sha256(first.encode()).hexdigest()
