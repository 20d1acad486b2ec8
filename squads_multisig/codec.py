"""
Binary codec for Squads v4 records and compiled transaction messages.

Two encodings are in play:

- The compact message format submitted as the `transaction_message`
  argument of vault transaction creation: u8 counts, u8-prefixed key,
  instruction and lookup lists, u8-prefixed account index lists and
  u16-prefixed instruction data.
- Borsh, used by the program for account records: little-endian
  integers, u32-prefixed vectors and strings, 1-byte option tags. The
  message stored inside a vault transaction record is re-serialized by
  the program in this form.

All account records start with an 8-byte Anchor discriminator.
"""

import hashlib
import struct
from typing import Callable, Optional, TypeVar

import base58

from .errors import InvalidAddress, MalformedAccountData, MessageTooLarge
from .types import (
    Active,
    AddressLookupTable,
    Approved,
    Cancelled,
    CompiledInstruction,
    Draft,
    Executed,
    Executing,
    Member,
    MessageAddressTableLookup,
    MultisigAccount,
    Permissions,
    ProgramConfig,
    ProposalAccount,
    ProposalStatus,
    Rejected,
    TransactionMessage,
    VaultTransactionAccount,
)

T = TypeVar("T")

PUBKEY_LENGTH = 32
ZERO_ADDRESS = base58.b58encode(bytes(PUBKEY_LENGTH)).decode()

# Discriminant -> variant. Must match the program's enum order exactly.
PROPOSAL_STATUS_VARIANTS = (
    Draft,      # 0
    Active,     # 1
    Rejected,   # 2
    Approved,   # 3
    Executing,  # 4
    Executed,   # 5
    Cancelled,  # 6
)

# Address lookup table state: u32 type tag, u64 deactivation slot,
# u64 last extended slot, u8 start index, Option<Pubkey> authority, u16 padding
LOOKUP_TABLE_META_SIZE = 56


def address_to_bytes(address: str) -> bytes:
    try:
        raw = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddress(f"Invalid base58 address {address!r}: {e}") from e
    if len(raw) != PUBKEY_LENGTH:
        raise InvalidAddress(f"Address {address!r} decodes to {len(raw)} bytes, expected 32")
    return raw


def bytes_to_address(raw: bytes) -> str:
    return base58.b58encode(bytes(raw)).decode()


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]


def instruction_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


MULTISIG_DISCRIMINATOR = account_discriminator("Multisig")
PROPOSAL_DISCRIMINATOR = account_discriminator("Proposal")
VAULT_TRANSACTION_DISCRIMINATOR = account_discriminator("VaultTransaction")
PROGRAM_CONFIG_DISCRIMINATOR = account_discriminator("ProgramConfig")


class ByteReader:
    """Bounds-checked cursor over raw bytes for one record type."""

    def __init__(self, data: bytes, record: str):
        self.data = bytes(data)
        self.record = record
        self.offset = 0

    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, n: int) -> bytes:
        if n > self.remaining():
            raise MalformedAccountData(
                self.record,
                f"needed {n} byte(s) at offset {self.offset}, only {self.remaining()} left",
            )
        chunk = self.data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def _unpack(self, fmt: str) -> int:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))[0]

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return self._unpack("<H")

    def u32(self) -> int:
        return self._unpack("<I")

    def u64(self) -> int:
        return self._unpack("<Q")

    def i64(self) -> int:
        return self._unpack("<q")

    def boolean(self) -> bool:
        value = self.u8()
        if value > 1:
            raise MalformedAccountData(self.record, f"invalid bool byte {value} at offset {self.offset - 1}")
        return value == 1

    def pubkey(self) -> str:
        return bytes_to_address(self.take(PUBKEY_LENGTH))

    def length(self, prefix: str) -> int:
        return getattr(self, prefix)()

    def option(self, read: Callable[[], T]) -> Optional[T]:
        tag = self.u8()
        if tag == 0:
            return None
        if tag == 1:
            return read()
        raise MalformedAccountData(self.record, f"invalid option tag {tag} at offset {self.offset - 1}")

    def vec(self, read: Callable[[], T], prefix: str = "u32") -> list[T]:
        count = self.length(prefix)
        return [read() for _ in range(count)]

    def byte_vec(self, prefix: str = "u32") -> bytes:
        return self.take(self.length(prefix))

    def discriminator(self, expected: bytes) -> None:
        actual = self.take(len(expected))
        if actual != expected:
            raise MalformedAccountData(
                self.record, f"discriminator mismatch: expected {expected.hex()}, got {actual.hex()}"
            )

    def expect_end(self) -> None:
        if self.remaining():
            raise MalformedAccountData(self.record, f"{self.remaining()} unexpected trailing byte(s)")


class ByteWriter:
    """Little-endian writer; length prefixes are range-checked."""

    _LIMITS = {"u8": 0xFF, "u16": 0xFFFF, "u32": 0xFFFFFFFF}

    def __init__(self):
        self.parts: list[bytes] = []

    def getvalue(self) -> bytes:
        return b"".join(self.parts)

    def raw(self, data: bytes) -> "ByteWriter":
        self.parts.append(bytes(data))
        return self

    def u8(self, value: int) -> "ByteWriter":
        return self.raw(struct.pack("<B", value))

    def u16(self, value: int) -> "ByteWriter":
        return self.raw(struct.pack("<H", value))

    def u32(self, value: int) -> "ByteWriter":
        return self.raw(struct.pack("<I", value))

    def u64(self, value: int) -> "ByteWriter":
        return self.raw(struct.pack("<Q", value))

    def i64(self, value: int) -> "ByteWriter":
        return self.raw(struct.pack("<q", value))

    def boolean(self, value: bool) -> "ByteWriter":
        return self.u8(1 if value else 0)

    def pubkey(self, address: str) -> "ByteWriter":
        return self.raw(address_to_bytes(address))

    def length(self, count: int, prefix: str, what: str) -> "ByteWriter":
        if count > self._LIMITS[prefix]:
            raise MessageTooLarge(f"{what} has {count} entries, more than a {prefix} prefix can hold")
        return getattr(self, prefix)(count)

    def option(self, value: Optional[T], write: Callable[[T], object]) -> "ByteWriter":
        if value is None:
            return self.u8(0)
        self.u8(1)
        write(value)
        return self

    def vec(self, items, write: Callable[[T], object], prefix: str = "u32", what: str = "vector") -> "ByteWriter":
        items = list(items)
        self.length(len(items), prefix, what)
        for item in items:
            write(item)
        return self

    def byte_vec(self, data: bytes, prefix: str = "u32", what: str = "byte vector") -> "ByteWriter":
        self.length(len(data), prefix, what)
        return self.raw(data)

    def string(self, value: str) -> "ByteWriter":
        return self.byte_vec(value.encode("utf-8"), what="string")


# Transaction message

_COMPACT = {"list": "u8", "indexes": "u8", "data": "u16"}
_BORSH = {"list": "u32", "indexes": "u32", "data": "u32"}


def _write_message(w: ByteWriter, message: TransactionMessage, layout: dict) -> None:
    w.u8(message.num_signers)
    w.u8(message.num_writable_signers)
    w.u8(message.num_writable_non_signers)
    w.vec(message.account_keys, w.pubkey, layout["list"], "account keys")

    def write_instruction(ix: CompiledInstruction) -> None:
        w.u8(ix.program_id_index)
        w.byte_vec(bytes(ix.account_indexes), layout["indexes"], "instruction account indexes")
        w.byte_vec(ix.data, layout["data"], "instruction data")

    def write_lookup(lookup: MessageAddressTableLookup) -> None:
        w.pubkey(lookup.account_key)
        w.byte_vec(bytes(lookup.writable_indexes), layout["indexes"], "writable lookup indexes")
        w.byte_vec(bytes(lookup.readonly_indexes), layout["indexes"], "readonly lookup indexes")

    w.vec(message.instructions, write_instruction, layout["list"], "instructions")
    w.vec(message.address_table_lookups, write_lookup, layout["list"], "address table lookups")


def _read_message(r: ByteReader, layout: dict) -> TransactionMessage:
    num_signers = r.u8()
    num_writable_signers = r.u8()
    num_writable_non_signers = r.u8()
    account_keys = r.vec(r.pubkey, layout["list"])

    def read_instruction() -> CompiledInstruction:
        return CompiledInstruction(
            program_id_index=r.u8(),
            account_indexes=tuple(r.byte_vec(layout["indexes"])),
            data=r.byte_vec(layout["data"]),
        )

    def read_lookup() -> MessageAddressTableLookup:
        return MessageAddressTableLookup(
            account_key=r.pubkey(),
            writable_indexes=tuple(r.byte_vec(layout["indexes"])),
            readonly_indexes=tuple(r.byte_vec(layout["indexes"])),
        )

    instructions = r.vec(read_instruction, layout["list"])
    lookups = r.vec(read_lookup, layout["list"])

    if num_writable_signers > num_signers or num_signers + num_writable_non_signers > len(account_keys):
        raise MalformedAccountData(
            r.record,
            f"partition counts ({num_signers}, {num_writable_signers}, {num_writable_non_signers}) "
            f"do not fit {len(account_keys)} account key(s)",
        )

    return TransactionMessage(
        num_signers=num_signers,
        num_writable_signers=num_writable_signers,
        num_writable_non_signers=num_writable_non_signers,
        account_keys=tuple(account_keys),
        instructions=tuple(instructions),
        address_table_lookups=tuple(lookups),
    )


def encode_transaction_message(message: TransactionMessage) -> bytes:
    """Encode a message in the compact format the program accepts on creation."""
    w = ByteWriter()
    _write_message(w, message, _COMPACT)
    return w.getvalue()


def decode_transaction_message(data: bytes) -> TransactionMessage:
    r = ByteReader(data, "TransactionMessage")
    message = _read_message(r, _COMPACT)
    r.expect_end()
    return message


# Proposal status

def encode_proposal_status(w: ByteWriter, status: ProposalStatus) -> None:
    w.u8(PROPOSAL_STATUS_VARIANTS.index(type(status)))
    if not isinstance(status, Executing):
        w.i64(status.timestamp)


def decode_proposal_status(r: ByteReader) -> ProposalStatus:
    tag = r.u8()
    if tag >= len(PROPOSAL_STATUS_VARIANTS):
        raise MalformedAccountData(r.record, f"unknown proposal status discriminant {tag}")
    variant = PROPOSAL_STATUS_VARIANTS[tag]
    if variant is Executing:
        return Executing()
    return variant(timestamp=r.i64())


# Account records

def decode_multisig(data: bytes) -> MultisigAccount:
    """
    Squads v4 Multisig account layout:
    - discriminator (8)
    - create_key (32), config_authority (32)
    - threshold u16, time_lock u32
    - transaction_index u64, stale_transaction_index u64
    - rent_collector Option<Pubkey> (1 + 32 when Some)
    - bump u8
    - members Vec<Member> (u32 length, each key 32 + permissions mask u8)
    """
    r = ByteReader(data, "Multisig")
    r.discriminator(MULTISIG_DISCRIMINATOR)

    create_key = r.pubkey()
    config_authority = r.pubkey()
    threshold = r.u16()
    time_lock = r.u32()
    transaction_index = r.u64()
    stale_transaction_index = r.u64()
    rent_collector = r.option(r.pubkey)
    bump = r.u8()

    def read_member() -> Member:
        return Member(key=r.pubkey(), permissions=Permissions(r.u8()))

    members = r.vec(read_member)

    return MultisigAccount(
        create_key=create_key,
        config_authority=None if config_authority == ZERO_ADDRESS else config_authority,
        threshold=threshold,
        time_lock=time_lock,
        transaction_index=transaction_index,
        stale_transaction_index=stale_transaction_index,
        rent_collector=rent_collector,
        bump=bump,
        members=members,
    )


def encode_multisig(account: MultisigAccount) -> bytes:
    w = ByteWriter().raw(MULTISIG_DISCRIMINATOR)
    w.pubkey(account.create_key)
    w.pubkey(account.config_authority or ZERO_ADDRESS)
    w.u16(account.threshold)
    w.u32(account.time_lock)
    w.u64(account.transaction_index)
    w.u64(account.stale_transaction_index)
    w.option(account.rent_collector, w.pubkey)
    w.u8(account.bump)

    def write_member(member: Member) -> None:
        w.pubkey(member.key)
        w.u8(member.permissions.mask)

    w.vec(account.members, write_member, what="members")
    return w.getvalue()


def decode_proposal(data: bytes) -> ProposalAccount:
    r = ByteReader(data, "Proposal")
    r.discriminator(PROPOSAL_DISCRIMINATOR)
    return ProposalAccount(
        multisig=r.pubkey(),
        transaction_index=r.u64(),
        status=decode_proposal_status(r),
        bump=r.u8(),
        approved=r.vec(r.pubkey),
        rejected=r.vec(r.pubkey),
        cancelled=r.vec(r.pubkey),
    )


def encode_proposal(account: ProposalAccount) -> bytes:
    w = ByteWriter().raw(PROPOSAL_DISCRIMINATOR)
    w.pubkey(account.multisig)
    w.u64(account.transaction_index)
    encode_proposal_status(w, account.status)
    w.u8(account.bump)
    for voters in (account.approved, account.rejected, account.cancelled):
        w.vec(voters, w.pubkey, what="voters")
    return w.getvalue()


def decode_vault_transaction(data: bytes) -> VaultTransactionAccount:
    r = ByteReader(data, "VaultTransaction")
    r.discriminator(VAULT_TRANSACTION_DISCRIMINATOR)
    return VaultTransactionAccount(
        multisig=r.pubkey(),
        creator=r.pubkey(),
        index=r.u64(),
        bump=r.u8(),
        vault_index=r.u8(),
        vault_bump=r.u8(),
        ephemeral_signer_bumps=list(r.byte_vec()),
        message=_read_message(r, _BORSH),
    )


def encode_vault_transaction(account: VaultTransactionAccount) -> bytes:
    w = ByteWriter().raw(VAULT_TRANSACTION_DISCRIMINATOR)
    w.pubkey(account.multisig)
    w.pubkey(account.creator)
    w.u64(account.index)
    w.u8(account.bump)
    w.u8(account.vault_index)
    w.u8(account.vault_bump)
    w.byte_vec(bytes(account.ephemeral_signer_bumps))
    _write_message(w, account.message, _BORSH)
    return w.getvalue()


def decode_program_config(data: bytes) -> ProgramConfig:
    r = ByteReader(data, "ProgramConfig")
    r.discriminator(PROGRAM_CONFIG_DISCRIMINATOR)
    return ProgramConfig(
        authority=r.pubkey(),
        multisig_creation_fee=r.u64(),
        treasury=r.pubkey(),
    )


def encode_program_config(config: ProgramConfig) -> bytes:
    w = ByteWriter().raw(PROGRAM_CONFIG_DISCRIMINATOR)
    w.pubkey(config.authority)
    w.u64(config.multisig_creation_fee)
    w.pubkey(config.treasury)
    w.raw(bytes(64))
    return w.getvalue()


def decode_address_lookup_table(key: str, data: bytes) -> AddressLookupTable:
    r = ByteReader(data, "AddressLookupTable")
    type_tag = r.u32()
    if type_tag != 1:
        raise MalformedAccountData(r.record, f"lookup table {key} is not initialized (type {type_tag})")
    r.take(LOOKUP_TABLE_META_SIZE - 4)
    if r.remaining() % PUBKEY_LENGTH:
        raise MalformedAccountData(
            r.record, f"{r.remaining()} address byte(s) is not a multiple of {PUBKEY_LENGTH}"
        )
    addresses = [r.pubkey() for _ in range(r.remaining() // PUBKEY_LENGTH)]
    return AddressLookupTable(key=key, addresses=tuple(addresses))
