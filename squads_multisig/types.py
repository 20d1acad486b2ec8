"""Type definitions for the Squads multisig client."""

from dataclasses import dataclass, field
from typing import Optional, Union


# Permission bits of a member's mask
PERMISSION_PROPOSE = 1 << 0
PERMISSION_VOTE = 1 << 1
PERMISSION_EXECUTE = 1 << 2
PERMISSION_FULL = PERMISSION_PROPOSE | PERMISSION_VOTE | PERMISSION_EXECUTE


@dataclass(frozen=True)
class Permissions:
    mask: int

    def has(self, permission: int) -> bool:
        return bool(self.mask & permission)


@dataclass(frozen=True)
class Member:
    """Multisig member: address plus permission bitmask."""
    key: str
    permissions: Permissions

    @classmethod
    def with_mask(cls, key: str, mask: int) -> "Member":
        return cls(key=key, permissions=Permissions(mask))

    def can_propose(self) -> bool:
        return self.permissions.has(PERMISSION_PROPOSE)

    def can_vote(self) -> bool:
        return self.permissions.has(PERMISSION_VOTE)

    def can_execute(self) -> bool:
        return self.permissions.has(PERMISSION_EXECUTE)


@dataclass
class MultisigAccount:
    """On-chain multisig record."""
    create_key: str
    config_authority: Optional[str]
    threshold: int
    time_lock: int
    transaction_index: int
    stale_transaction_index: int
    rent_collector: Optional[str]
    bump: int
    members: list[Member]

    def next_transaction_index(self) -> int:
        return self.transaction_index + 1

    def find_member(self, address: str) -> Optional[Member]:
        for member in self.members:
            if member.key == address:
                return member
        return None

    def voting_member_count(self) -> int:
        return sum(1 for m in self.members if m.can_vote())


# Proposal status variants, in the external program's discriminant order.

@dataclass(frozen=True)
class Draft:
    timestamp: int


@dataclass(frozen=True)
class Active:
    timestamp: int


@dataclass(frozen=True)
class Rejected:
    timestamp: int


@dataclass(frozen=True)
class Approved:
    timestamp: int


@dataclass(frozen=True)
class Executing:
    pass


@dataclass(frozen=True)
class Executed:
    timestamp: int


@dataclass(frozen=True)
class Cancelled:
    timestamp: int


ProposalStatus = Union[Draft, Active, Rejected, Approved, Executing, Executed, Cancelled]


@dataclass
class ProposalAccount:
    """On-chain proposal record, keyed by (multisig, transaction index)."""
    multisig: str
    transaction_index: int
    status: ProposalStatus
    bump: int
    approved: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)

    def vote_of(self, address: str) -> Optional[str]:
        """Return which vote set holds `address`, if any."""
        if address in self.approved:
            return "approved"
        if address in self.rejected:
            return "rejected"
        if address in self.cancelled:
            return "cancelled"
        return None


@dataclass(frozen=True)
class CompiledInstruction:
    program_id_index: int
    account_indexes: tuple[int, ...]
    data: bytes


@dataclass(frozen=True)
class MessageAddressTableLookup:
    account_key: str
    writable_indexes: tuple[int, ...]
    readonly_indexes: tuple[int, ...]


@dataclass(frozen=True)
class TransactionMessage:
    """
    Compiled message.

    Account keys are ordered [writable signers][readonly signers]
    [writable non-signers][readonly non-signers]; the three counts
    give the partition boundaries.
    """
    num_signers: int
    num_writable_signers: int
    num_writable_non_signers: int
    account_keys: tuple[str, ...]
    instructions: tuple[CompiledInstruction, ...]
    address_table_lookups: tuple[MessageAddressTableLookup, ...] = ()

    def is_signer_index(self, index: int) -> bool:
        return index < self.num_signers

    def is_writable_index(self, index: int) -> bool:
        if index >= len(self.account_keys):
            return False
        if index < self.num_writable_signers:
            return True
        if index >= self.num_signers:
            return index - self.num_signers < self.num_writable_non_signers
        return False


@dataclass
class VaultTransactionAccount:
    """On-chain vault transaction record; immutable once created."""
    multisig: str
    creator: str
    index: int
    bump: int
    vault_index: int
    vault_bump: int
    ephemeral_signer_bumps: list[int]
    message: TransactionMessage

    @property
    def ephemeral_signer_count(self) -> int:
        return len(self.ephemeral_signer_bumps)


@dataclass
class ProgramConfig:
    authority: str
    multisig_creation_fee: int
    treasury: str


@dataclass(frozen=True)
class AccountMeta:
    pubkey: str
    is_signer: bool = False
    is_writable: bool = False


@dataclass(frozen=True)
class Instruction:
    program_id: str
    accounts: tuple[AccountMeta, ...]
    data: bytes


@dataclass(frozen=True)
class AddressLookupTable:
    key: str
    addresses: tuple[str, ...]


@dataclass
class KeyMeta:
    is_signer: bool = False
    is_writable: bool = False
    is_invoked: bool = False


@dataclass
class VoteOutcome:
    """Proposal tallies as they stand once a vote plan lands."""
    action: str
    status: str
    approvals: int
    rejections: int
    cancellations: int
    threshold: int
    threshold_reached: bool
    executable_after: Optional[int] = None
    timelock_remaining: int = 0


@dataclass
class TransactionPlan:
    """Unsigned instruction set produced by the lifecycle orchestrator."""
    action: str
    fee_payer: str
    instructions: list[Instruction]
    multisig: str
    transaction_index: Optional[int] = None
    transaction_address: Optional[str] = None
    proposal_address: Optional[str] = None
    vault_address: Optional[str] = None
    message: Optional[TransactionMessage] = None
    outcome: Optional[VoteOutcome] = None


# Display types

@dataclass
class MemberInfo:
    """Multisig member information."""
    address: str
    permissions: list[str]


@dataclass
class VaultInfo:
    """Squads vault PDA information."""
    vault_address: str
    parent_multisig: Optional[str]
    vault_index: Optional[int]
    bump: Optional[int] = None
    balance_lamports: Optional[int] = None


@dataclass
class ProposalInfo:
    transaction_index: int
    transaction_address: str
    proposal_address: str
    status: Optional[str]
    approvals: int = 0
    rejections: int = 0
    cancellations: int = 0


@dataclass
class MultisigInfo:
    """Squads v4 multisig account information."""
    address: str
    threshold: int
    member_count: int
    voting_member_count: int
    threshold_display: str  # "3 of 5" format
    time_lock_seconds: int
    time_lock_display: str  # "4.0 hours" or "None (0 seconds)"
    create_key: str
    config_authority: Optional[str]
    rent_collector: Optional[str]
    bump: int
    transaction_index: int
    stale_transaction_index: int
    members: list[MemberInfo]
    vault: Optional[VaultInfo] = None
    recent_proposals: list[ProposalInfo] = field(default_factory=list)
