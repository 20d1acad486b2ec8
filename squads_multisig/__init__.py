"""Squads Multisig - propose, vote on and execute Squads v4 multisig transactions on Solana."""

__version__ = "1.0.0"

from .compiler import compile_message, resolve
from .config import ClientConfig
from .errors import SquadsError
from .keypair import Keypair
from .lifecycle import MultisigClient
from .pda import (
    find_program_address,
    get_multisig_pda,
    get_proposal_pda,
    get_transaction_pda,
    get_vault_pda,
)
from .proposal import (
    check_approvable,
    check_cancellable,
    check_executable,
    check_rejectable,
    has_reached_threshold,
    vote_outcome,
)
from .rpc import Deadline, RecordStore, RpcRecordStore
from .types import (
    Member,
    MultisigAccount,
    MultisigInfo,
    ProposalAccount,
    TransactionMessage,
    TransactionPlan,
    VoteOutcome,
)

__all__ = [
    "compile_message",
    "resolve",
    "ClientConfig",
    "SquadsError",
    "Keypair",
    "MultisigClient",
    "find_program_address",
    "get_multisig_pda",
    "get_proposal_pda",
    "get_transaction_pda",
    "get_vault_pda",
    "check_approvable",
    "check_cancellable",
    "check_executable",
    "check_rejectable",
    "has_reached_threshold",
    "vote_outcome",
    "Deadline",
    "RecordStore",
    "RpcRecordStore",
    "Member",
    "MultisigAccount",
    "MultisigInfo",
    "ProposalAccount",
    "TransactionMessage",
    "TransactionPlan",
    "VoteOutcome",
]
