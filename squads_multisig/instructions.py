"""
Instruction builders for the system program and the Squads v4 program.

Each builder returns an `Instruction` whose account order matches what the
program expects; Anchor instructions carry the 8-byte `global:<name>`
discriminator followed by their borsh-encoded arguments.
"""

from typing import Optional, Sequence

from .codec import ByteWriter, encode_transaction_message, instruction_discriminator
from .config import SQUADS_V4_PROGRAM, SYSTEM_PROGRAM
from .types import AccountMeta, Instruction, Member, TransactionMessage

SYSTEM_TRANSFER = 2

MULTISIG_CREATE_V2 = instruction_discriminator("multisig_create_v2")
VAULT_TRANSACTION_CREATE = instruction_discriminator("vault_transaction_create")
VAULT_TRANSACTION_EXECUTE = instruction_discriminator("vault_transaction_execute")
PROPOSAL_CREATE = instruction_discriminator("proposal_create")
PROPOSAL_APPROVE = instruction_discriminator("proposal_approve")
PROPOSAL_REJECT = instruction_discriminator("proposal_reject")
PROPOSAL_CANCEL_V2 = instruction_discriminator("proposal_cancel_v2")


def _signer(pubkey: str, writable: bool = False) -> AccountMeta:
    return AccountMeta(pubkey, is_signer=True, is_writable=writable)


def _writable(pubkey: str) -> AccountMeta:
    return AccountMeta(pubkey, is_writable=True)


def _readonly(pubkey: str) -> AccountMeta:
    return AccountMeta(pubkey)


def transfer(from_address: str, to_address: str, lamports: int) -> Instruction:
    """System program transfer: u32 opcode 2 followed by the u64 amount."""
    data = ByteWriter().u32(SYSTEM_TRANSFER).u64(lamports).getvalue()
    return Instruction(
        program_id=SYSTEM_PROGRAM,
        accounts=(_signer(from_address, writable=True), _writable(to_address)),
        data=data,
    )


def multisig_create_v2(
    program_config: str,
    treasury: str,
    multisig: str,
    create_key: str,
    creator: str,
    members: Sequence[Member],
    threshold: int,
    time_lock: int,
    config_authority: Optional[str] = None,
    rent_collector: Optional[str] = None,
    memo: Optional[str] = None,
    program_id: str = SQUADS_V4_PROGRAM,
) -> Instruction:
    w = ByteWriter().raw(MULTISIG_CREATE_V2)
    w.option(config_authority, w.pubkey)
    w.u16(threshold)

    def write_member(member: Member) -> None:
        w.pubkey(member.key)
        w.u8(member.permissions.mask)

    w.vec(members, write_member, what="members")
    w.u32(time_lock)
    w.option(rent_collector, w.pubkey)
    w.option(memo, w.string)

    return Instruction(
        program_id=program_id,
        accounts=(
            _readonly(program_config),
            _writable(treasury),
            _writable(multisig),
            _signer(create_key),
            _signer(creator, writable=True),
            _readonly(SYSTEM_PROGRAM),
        ),
        data=w.getvalue(),
    )


def vault_transaction_create(
    multisig: str,
    transaction: str,
    creator: str,
    rent_payer: str,
    vault_index: int,
    message: TransactionMessage,
    ephemeral_signers: int = 0,
    memo: Optional[str] = None,
    program_id: str = SQUADS_V4_PROGRAM,
) -> Instruction:
    w = ByteWriter().raw(VAULT_TRANSACTION_CREATE)
    w.u8(vault_index)
    w.u8(ephemeral_signers)
    w.byte_vec(encode_transaction_message(message), what="transaction message")
    w.option(memo, w.string)

    return Instruction(
        program_id=program_id,
        accounts=(
            _writable(multisig),
            _writable(transaction),
            _signer(creator),
            _signer(rent_payer, writable=True),
            _readonly(SYSTEM_PROGRAM),
        ),
        data=w.getvalue(),
    )


def proposal_create(
    multisig: str,
    proposal: str,
    creator: str,
    rent_payer: str,
    transaction_index: int,
    draft: bool = False,
    program_id: str = SQUADS_V4_PROGRAM,
) -> Instruction:
    data = ByteWriter().raw(PROPOSAL_CREATE).u64(transaction_index).boolean(draft).getvalue()
    return Instruction(
        program_id=program_id,
        accounts=(
            _readonly(multisig),
            _writable(proposal),
            _signer(creator),
            _signer(rent_payer, writable=True),
            _readonly(SYSTEM_PROGRAM),
        ),
        data=data,
    )


def _vote(
    discriminator: bytes,
    multisig: str,
    proposal: str,
    member: str,
    memo: Optional[str],
    program_id: str,
    with_system_program: bool = False,
) -> Instruction:
    w = ByteWriter().raw(discriminator)
    w.option(memo, w.string)
    accounts = [_readonly(multisig), _signer(member, writable=True), _writable(proposal)]
    if with_system_program:
        accounts.append(_readonly(SYSTEM_PROGRAM))
    return Instruction(program_id=program_id, accounts=tuple(accounts), data=w.getvalue())


def proposal_approve(
    multisig: str, proposal: str, member: str, memo: Optional[str] = None, program_id: str = SQUADS_V4_PROGRAM
) -> Instruction:
    return _vote(PROPOSAL_APPROVE, multisig, proposal, member, memo, program_id)


def proposal_reject(
    multisig: str, proposal: str, member: str, memo: Optional[str] = None, program_id: str = SQUADS_V4_PROGRAM
) -> Instruction:
    return _vote(PROPOSAL_REJECT, multisig, proposal, member, memo, program_id)


def proposal_cancel(
    multisig: str, proposal: str, member: str, memo: Optional[str] = None, program_id: str = SQUADS_V4_PROGRAM
) -> Instruction:
    # v2 cancel reallocs the proposal, so it needs the system program
    return _vote(PROPOSAL_CANCEL_V2, multisig, proposal, member, memo, program_id, with_system_program=True)


VOTE_BUILDERS = {
    "approve": proposal_approve,
    "reject": proposal_reject,
    "cancel": proposal_cancel,
}


def vault_transaction_execute(
    multisig: str,
    proposal: str,
    transaction: str,
    member: str,
    remaining_accounts: Sequence[AccountMeta] = (),
    program_id: str = SQUADS_V4_PROGRAM,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        accounts=(
            _readonly(multisig),
            _writable(proposal),
            _readonly(transaction),
            _signer(member),
            *remaining_accounts,
        ),
        data=VAULT_TRANSACTION_EXECUTE,
    )
