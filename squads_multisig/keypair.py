"""Ed25519 keypairs in the Solana CLI JSON file format."""

import json
from typing import Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from .codec import address_to_bytes, bytes_to_address
from .errors import KeypairError


class Keypair:
    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key
        raw = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self.pubkey = bytes_to_address(raw)

    @classmethod
    def generate(cls) -> "Keypair":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_secret_bytes(cls, secret: bytes) -> "Keypair":
        """
        Accepts either the 32-byte seed or the 64-byte seed||pubkey form
        written by `solana-keygen`. The embedded public key must match.
        """
        if len(secret) not in (32, 64):
            raise KeypairError(f"Secret key must be 32 or 64 bytes, got {len(secret)}")
        keypair = cls(Ed25519PrivateKey.from_private_bytes(bytes(secret[:32])))
        if len(secret) == 64 and bytes_to_address(bytes(secret[32:])) != keypair.pubkey:
            raise KeypairError("Public key half of the secret key does not match its seed")
        return keypair

    @classmethod
    def from_file(cls, path: str) -> "Keypair":
        try:
            with open(path) as f:
                values = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise KeypairError(f"Error loading keypair {path}: {e}") from e

        if not isinstance(values, list) or not all(isinstance(v, int) and 0 <= v <= 255 for v in values):
            raise KeypairError(f"Keypair file {path} must hold a JSON array of bytes")
        return cls.from_secret_bytes(bytes(values))

    def secret_bytes(self) -> bytes:
        seed = self._private_key.private_bytes_raw()
        return seed + address_to_bytes(self.pubkey)

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)

    def __repr__(self) -> str:
        return f"Keypair({self.pubkey})"


def load_keypair(path: Optional[str]) -> Optional[Keypair]:
    return Keypair.from_file(path) if path else None
