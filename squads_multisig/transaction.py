"""
Signable outer Solana transaction in the legacy wire format.

The outer message reuses `compile_message` with the fee payer first, then
serializes it with shortvec (compact-u16) lengths and a recent blockhash.
"""

from typing import Iterable, Optional, Protocol, Sequence

from .codec import ByteWriter, address_to_bytes, bytes_to_address
from .compiler import compile_message, message_header
from .errors import MessageTooLarge, MissingSignature
from .types import Instruction, TransactionMessage

SIGNATURE_LENGTH = 64
PACKET_DATA_SIZE = 1232


class Signer(Protocol):
    pubkey: str

    def sign(self, message: bytes) -> bytes:
        ...


def encode_shortvec(value: int) -> bytes:
    """Compact-u16: 7 bits per byte, high bit set while more bytes follow."""
    if not 0 <= value <= 0xFFFF:
        raise MessageTooLarge(f"Length {value} does not fit a compact-u16")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def serialize_message(message: TransactionMessage, recent_blockhash: str) -> bytes:
    if message.address_table_lookups:
        raise MessageTooLarge("Legacy messages cannot reference address lookup tables")

    w = ByteWriter()
    for count in message_header(message):
        w.u8(count)
    w.raw(encode_shortvec(len(message.account_keys)))
    for key in message.account_keys:
        w.pubkey(key)
    w.raw(address_to_bytes(recent_blockhash))
    w.raw(encode_shortvec(len(message.instructions)))
    for ix in message.instructions:
        w.u8(ix.program_id_index)
        w.raw(encode_shortvec(len(ix.account_indexes)))
        w.raw(bytes(ix.account_indexes))
        w.raw(encode_shortvec(len(ix.data)))
        w.raw(ix.data)
    return w.getvalue()


class Transaction:
    def __init__(self, message: TransactionMessage, recent_blockhash: str):
        self.message = message
        self.recent_blockhash = recent_blockhash
        self.message_bytes = serialize_message(message, recent_blockhash)
        self.signatures: list[Optional[bytes]] = [None] * message.num_signers

    @classmethod
    def new(cls, instructions: Sequence[Instruction], fee_payer: str, recent_blockhash: str) -> "Transaction":
        return cls(compile_message(instructions, fee_payer), recent_blockhash)

    @property
    def signer_keys(self) -> tuple[str, ...]:
        return self.message.account_keys[: self.message.num_signers]

    def sign(self, signers: Iterable[Signer]) -> list[str]:
        """Fill the signature slots of every signer given; returns the keys signed for."""
        by_key = {s.pubkey: s for s in signers}
        signed = []
        for i, key in enumerate(self.signer_keys):
            signer = by_key.get(key)
            if signer is None:
                continue
            self.signatures[i] = signer.sign(self.message_bytes)
            signed.append(key)
        return signed

    def missing_signers(self) -> list[str]:
        return [key for key, sig in zip(self.signer_keys, self.signatures) if sig is None]

    def serialize(self) -> bytes:
        missing = self.missing_signers()
        if missing:
            raise MissingSignature(missing)
        raw = encode_shortvec(len(self.signatures)) + b"".join(self.signatures) + self.message_bytes
        if len(raw) > PACKET_DATA_SIZE:
            raise MessageTooLarge(f"Transaction is {len(raw)} bytes, at most {PACKET_DATA_SIZE} allowed")
        return raw

    @property
    def signature(self) -> Optional[str]:
        """Fee payer signature in base58, the transaction id."""
        first = self.signatures[0] if self.signatures else None
        return bytes_to_address(first) if first else None
