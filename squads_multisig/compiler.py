"""
Account metadata resolution and message compilation.

`resolve` collects every account touched by a list of instructions and
merges their signer/writable flags. `compile_message` turns the result into
a `TransactionMessage`: accounts partitioned into the four signer/writable
buckets, optionally moved into address lookup tables, and instructions
rewritten to reference accounts by position.
"""

import logging
from typing import Iterable, Optional, Sequence

from .errors import MessageTooLarge, UnresolvedAccountReference
from .types import (
    AddressLookupTable,
    CompiledInstruction,
    Instruction,
    KeyMeta,
    MessageAddressTableLookup,
    TransactionMessage,
)

logger = logging.getLogger(__name__)

MAX_ACCOUNT_INDEX = 0xFF


class CompiledKeys:
    """Insertion-ordered map of address -> KeyMeta for one compile call."""

    def __init__(self, payer: str, key_meta_map: dict[str, KeyMeta]):
        self.payer = payer
        self.key_meta_map = key_meta_map

    @classmethod
    def compile(cls, instructions: Iterable[Instruction], payer: str) -> "CompiledKeys":
        key_meta_map: dict[str, KeyMeta] = {}

        def get_or_insert_default(address: str) -> KeyMeta:
            if address not in key_meta_map:
                key_meta_map[address] = KeyMeta()
            return key_meta_map[address]

        payer_meta = get_or_insert_default(payer)
        payer_meta.is_signer = True
        payer_meta.is_writable = True

        for ix in instructions:
            get_or_insert_default(ix.program_id).is_invoked = True
            for account in ix.accounts:
                meta = get_or_insert_default(account.pubkey)
                meta.is_signer = meta.is_signer or account.is_signer
                meta.is_writable = meta.is_writable or account.is_writable

        return cls(payer, key_meta_map)

    def get_message_components(self) -> tuple[tuple[int, int, int], list[str]]:
        """Return ((num_signers, num_writable_signers, num_writable_non_signers), static keys)."""
        writable_signers: list[str] = []
        readonly_signers: list[str] = []
        writable_non_signers: list[str] = []
        readonly_non_signers: list[str] = []

        for address, meta in self.key_meta_map.items():
            if meta.is_signer and meta.is_writable:
                writable_signers.append(address)
            elif meta.is_signer:
                readonly_signers.append(address)
            elif meta.is_writable:
                writable_non_signers.append(address)
            else:
                readonly_non_signers.append(address)

        counts = (
            len(writable_signers) + len(readonly_signers),
            len(writable_signers),
            len(writable_non_signers),
        )
        static_keys = writable_signers + readonly_signers + writable_non_signers + readonly_non_signers
        return counts, static_keys

    def extract_table_lookup(
        self, lookup_table: AddressLookupTable
    ) -> Optional[tuple[MessageAddressTableLookup, list[str], list[str]]]:
        """
        Move every non-signer, non-invoked key found in `lookup_table` out of
        the static set. Returns None when the table matches nothing.
        """
        writable_indexes, drained_writable = self._drain_keys_found_in_lookup_table(
            lookup_table.addresses,
            lambda meta: not meta.is_signer and not meta.is_invoked and meta.is_writable,
        )
        readonly_indexes, drained_readonly = self._drain_keys_found_in_lookup_table(
            lookup_table.addresses,
            lambda meta: not meta.is_signer and not meta.is_invoked and not meta.is_writable,
        )

        if not writable_indexes and not readonly_indexes:
            return None

        lookup = MessageAddressTableLookup(
            account_key=lookup_table.key,
            writable_indexes=tuple(writable_indexes),
            readonly_indexes=tuple(readonly_indexes),
        )
        return lookup, drained_writable, drained_readonly

    def _drain_keys_found_in_lookup_table(self, entries: Sequence[str], key_filter) -> tuple[list[int], list[str]]:
        positions = {}
        for i, entry in enumerate(entries):
            positions.setdefault(entry, i)

        indexes: list[int] = []
        drained: list[str] = []
        for address, meta in list(self.key_meta_map.items()):
            if not key_filter(meta) or address not in positions:
                continue
            index = positions[address]
            if index > MAX_ACCOUNT_INDEX:
                continue
            indexes.append(index)
            drained.append(address)
            del self.key_meta_map[address]
        return indexes, drained


def resolve(instructions: Iterable[Instruction], fee_payer: str) -> CompiledKeys:
    return CompiledKeys.compile(instructions, fee_payer)


def compile_instructions(
    instructions: Iterable[Instruction],
    static_keys: Sequence[str],
    lookup_writable: Sequence[str] = (),
    lookup_readonly: Sequence[str] = (),
) -> list[CompiledInstruction]:
    account_index_map: dict[str, int] = {}
    for key in [*static_keys, *lookup_writable, *lookup_readonly]:
        account_index_map.setdefault(key, len(account_index_map))

    if len(account_index_map) > MAX_ACCOUNT_INDEX + 1:
        raise MessageTooLarge(f"Message references {len(account_index_map)} accounts, at most 256 allowed")

    def index_of(address: str) -> int:
        try:
            return account_index_map[address]
        except KeyError:
            raise UnresolvedAccountReference(address) from None

    compiled = []
    for ix in instructions:
        compiled.append(CompiledInstruction(
            program_id_index=index_of(ix.program_id),
            account_indexes=tuple(index_of(meta.pubkey) for meta in ix.accounts),
            data=bytes(ix.data),
        ))
    return compiled


def compile_message(
    instructions: Sequence[Instruction],
    fee_payer: str,
    address_lookup_tables: Sequence[AddressLookupTable] = (),
) -> TransactionMessage:
    compiled_keys = resolve(instructions, fee_payer)

    lookups: list[MessageAddressTableLookup] = []
    lookup_writable: list[str] = []
    lookup_readonly: list[str] = []
    for table in address_lookup_tables:
        extracted = compiled_keys.extract_table_lookup(table)
        if extracted is None:
            continue
        lookup, writable, readonly = extracted
        lookups.append(lookup)
        lookup_writable.extend(writable)
        lookup_readonly.extend(readonly)
        logger.debug(f"Lookup table {table.key}: {len(writable)} writable, {len(readonly)} readonly")

    (num_signers, num_writable_signers, num_writable_non_signers), static_keys = (
        compiled_keys.get_message_components()
    )

    return TransactionMessage(
        num_signers=num_signers,
        num_writable_signers=num_writable_signers,
        num_writable_non_signers=num_writable_non_signers,
        account_keys=tuple(static_keys),
        instructions=tuple(compile_instructions(instructions, static_keys, lookup_writable, lookup_readonly)),
        address_table_lookups=tuple(lookups),
    )


def message_header(message: TransactionMessage) -> tuple[int, int, int]:
    """Legacy header: (required signatures, readonly signed, readonly unsigned)."""
    return (
        message.num_signers,
        message.num_signers - message.num_writable_signers,
        len(message.account_keys) - message.num_signers - message.num_writable_non_signers,
    )


def loaded_account_keys(message: TransactionMessage, lookup_tables: dict[str, AddressLookupTable]) -> tuple[list[str], list[str]]:
    """Resolve a message's lookup indexes to (writable, readonly) addresses, in lookup order."""
    writable: list[str] = []
    readonly: list[str] = []
    for lookup in message.address_table_lookups:
        table = lookup_tables.get(lookup.account_key)
        if table is None:
            raise UnresolvedAccountReference(lookup.account_key)
        for indexes, out in ((lookup.writable_indexes, writable), (lookup.readonly_indexes, readonly)):
            for i in indexes:
                if i >= len(table.addresses):
                    raise UnresolvedAccountReference(f"{lookup.account_key}[{i}]")
                out.append(table.addresses[i])
    return writable, readonly
