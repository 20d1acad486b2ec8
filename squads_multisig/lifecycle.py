"""
Transaction lifecycle orchestration for Squads v4 multisigs.

Each use case reads fresh state from the record store, refuses locally
anything the program would certainly reject, and returns an unsigned
`TransactionPlan`. `submit` signs and sends a plan, and can wait for its
confirmation. Nothing is resent.
"""

import logging
import time
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from .codec import (
    decode_address_lookup_table,
    decode_multisig,
    decode_program_config,
    decode_proposal,
    decode_vault_transaction,
)
from .compiler import compile_message, loaded_account_keys
from .config import ClientConfig
from .errors import (
    AccountNotFound,
    InsufficientVaultBalance,
    InvalidThreshold,
    NotAMember,
    NoVotePermission,
    Timeout,
    TransactionFailed,
    ValueOutOfRange,
)
from .formatters import describe_status, explain_threshold_error, format_timelock, permission_names
from .instructions import (
    VOTE_BUILDERS,
    multisig_create_v2,
    proposal_approve,
    proposal_create,
    transfer,
    vault_transaction_create,
    vault_transaction_execute,
)
from .pda import (
    get_multisig_pda,
    get_program_config_pda,
    get_proposal_pda,
    get_transaction_pda,
    get_vault_pda,
)
from .proposal import apply_vote, check_executable, check_proposable, check_vote, vote_outcome
from .rpc import Deadline, RecordStore
from .transaction import Signer, Transaction
from .types import (
    AccountMeta,
    Active,
    AddressLookupTable,
    Member,
    MemberInfo,
    MultisigAccount,
    MultisigInfo,
    ProgramConfig,
    ProposalAccount,
    ProposalInfo,
    TransactionPlan,
    VaultInfo,
    VaultTransactionAccount,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

U8_MAX = 0xFF
U16_MAX = 0xFFFF
U32_MAX = 0xFFFFFFFF
U64_MAX = 0xFFFFFFFFFFFFFFFF

POLL_INTERVAL = 1.0
DEFAULT_CONFIRM_TIMEOUT = 60.0

# Ordered from weakest to strongest
COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")


def check_range(name: str, value: int, low: int, high: int) -> None:
    if not low <= value <= high:
        raise ValueOutOfRange(name, value, low, high)


class MultisigClient:
    def __init__(self, store: RecordStore, config: Optional[ClientConfig] = None):
        self.store = store
        self.config = config or ClientConfig()
        self.sleep = time.sleep

    @property
    def program_id(self) -> str:
        return self.config.program_id

    # Record fetching

    def _fetch(self, address: str, record: str, decode: Callable[[bytes], T], deadline: Optional[Deadline]) -> T:
        data = self.store.get(address, deadline)
        if data is None:
            raise AccountNotFound(address, record)
        return decode(data)

    def fetch_multisig(self, address: str, deadline: Optional[Deadline] = None) -> MultisigAccount:
        return self._fetch(address, "Multisig", decode_multisig, deadline)

    def fetch_proposal(self, address: str, deadline: Optional[Deadline] = None) -> ProposalAccount:
        return self._fetch(address, "Proposal", decode_proposal, deadline)

    def fetch_vault_transaction(self, address: str, deadline: Optional[Deadline] = None) -> VaultTransactionAccount:
        return self._fetch(address, "VaultTransaction", decode_vault_transaction, deadline)

    def fetch_program_config(self, deadline: Optional[Deadline] = None) -> ProgramConfig:
        address, _ = get_program_config_pda(self.program_id)
        return self._fetch(address, "ProgramConfig", decode_program_config, deadline)

    def fetch_lookup_table(self, address: str, deadline: Optional[Deadline] = None) -> AddressLookupTable:
        return self._fetch(
            address, "AddressLookupTable", lambda data: decode_address_lookup_table(address, data), deadline
        )

    # Use cases

    def propose_transfer(
        self,
        multisig: str,
        proposer: str,
        recipient: str,
        lamports: int,
        vault_index: int = 0,
        memo: Optional[str] = None,
        auto_approve: bool = True,
        deadline: Optional[Deadline] = None,
        now: Optional[int] = None,
    ) -> TransactionPlan:
        """
        Plan a vault transfer: create the vault transaction and its proposal,
        and approve it in the same submission when `auto_approve` is set.
        """
        check_range("amount in lamports", lamports, 1, U64_MAX)
        check_range("vault index", vault_index, 0, U8_MAX)

        account = self.fetch_multisig(multisig, deadline)
        member = check_proposable(account, proposer, multisig)
        if auto_approve and not member.can_vote():
            raise NoVotePermission(proposer)

        vault, _ = get_vault_pda(multisig, vault_index, self.program_id)
        balance = self.store.get_balance(vault, deadline)
        if balance < lamports:
            raise InsufficientVaultBalance(vault, balance, lamports)

        transaction_index = account.next_transaction_index()
        transaction_address, _ = get_transaction_pda(multisig, transaction_index, self.program_id)
        proposal_address, _ = get_proposal_pda(multisig, transaction_index, self.program_id)

        logger.info(f"Proposing transfer of {lamports} lamports from vault {vault} to {recipient}")
        logger.info(f"Transaction index: {transaction_index}")

        # The vault pays inside the inner message; the program signs for it on execute
        message = compile_message([transfer(vault, recipient, lamports)], vault)

        instructions = [
            vault_transaction_create(
                multisig, transaction_address, proposer, proposer, vault_index, message,
                memo=memo, program_id=self.program_id,
            ),
            proposal_create(multisig, proposal_address, proposer, proposer, transaction_index, program_id=self.program_id),
        ]
        outcome = None
        if auto_approve:
            instructions.append(proposal_approve(multisig, proposal_address, proposer, memo, self.program_id))
            now = int(time.time()) if now is None else now
            created = ProposalAccount(multisig, transaction_index, Active(now), bump=0)
            outcome = vote_outcome(apply_vote(created, account, proposer, "approve", now), account, "approve", now)

        return TransactionPlan(
            action="propose",
            fee_payer=proposer,
            instructions=instructions,
            multisig=multisig,
            transaction_index=transaction_index,
            transaction_address=transaction_address,
            proposal_address=proposal_address,
            vault_address=vault,
            message=message,
            outcome=outcome,
        )

    def vote(
        self,
        multisig: str,
        transaction_index: int,
        voter: str,
        action: str,
        memo: Optional[str] = None,
        deadline: Optional[Deadline] = None,
        now: Optional[int] = None,
    ) -> TransactionPlan:
        """
        Plan one vote. The plan's `outcome` holds the tallies the proposal
        will show once the vote lands on the state just read.
        """
        if action not in VOTE_BUILDERS:
            raise ValueError(f"Unknown vote action {action!r}")

        proposal_address, _ = get_proposal_pda(multisig, transaction_index, self.program_id)
        account = self.fetch_multisig(multisig, deadline)
        proposal = self.fetch_proposal(proposal_address, deadline)

        member = account.find_member(voter)
        if member is None:
            raise NotAMember(voter, multisig)
        check_vote(proposal, member, action, account)

        logger.info(f"Planning {action} of transaction #{transaction_index} by {voter}")
        ix = VOTE_BUILDERS[action](multisig, proposal_address, voter, memo, self.program_id)
        now = int(time.time()) if now is None else now
        voted = apply_vote(proposal, account, voter, action, now)
        return TransactionPlan(
            action=action,
            fee_payer=voter,
            instructions=[ix],
            multisig=multisig,
            transaction_index=transaction_index,
            proposal_address=proposal_address,
            outcome=vote_outcome(voted, account, action, now),
        )

    def execute(
        self,
        multisig: str,
        transaction_index: int,
        executor: str,
        now: Optional[int] = None,
        deadline: Optional[Deadline] = None,
    ) -> TransactionPlan:
        transaction_address, _ = get_transaction_pda(multisig, transaction_index, self.program_id)
        proposal_address, _ = get_proposal_pda(multisig, transaction_index, self.program_id)

        account = self.fetch_multisig(multisig, deadline)
        proposal = self.fetch_proposal(proposal_address, deadline)

        member = account.find_member(executor)
        if member is None:
            raise NotAMember(executor, multisig)
        check_executable(proposal, account, member, int(time.time()) if now is None else now)

        vault_transaction = self.fetch_vault_transaction(transaction_address, deadline)
        message = vault_transaction.message

        tables = {
            lookup.account_key: self.fetch_lookup_table(lookup.account_key, deadline)
            for lookup in message.address_table_lookups
        }
        remaining = self.execute_remaining_accounts(vault_transaction, tables)

        logger.info(
            f"Executing vault transaction #{transaction_index} on multisig {multisig} "
            f"with {len(remaining)} additional accounts"
        )
        ix = vault_transaction_execute(
            multisig, proposal_address, transaction_address, executor, remaining, self.program_id
        )
        vault, _ = get_vault_pda(multisig, vault_transaction.vault_index, self.program_id)
        return TransactionPlan(
            action="execute",
            fee_payer=executor,
            instructions=[ix],
            multisig=multisig,
            transaction_index=transaction_index,
            transaction_address=transaction_address,
            proposal_address=proposal_address,
            vault_address=vault,
            message=message,
        )

    @staticmethod
    def execute_remaining_accounts(
        vault_transaction: VaultTransactionAccount, tables: dict[str, AddressLookupTable]
    ) -> list[AccountMeta]:
        """
        Accounts the execute instruction carries after its fixed four:
        lookup tables (readonly), then static keys with writability taken
        from the stored partition counts, then looked-up writable keys,
        then looked-up readonly keys. None of them sign; the program signs
        for the vault itself.
        """
        message = vault_transaction.message
        metas = [AccountMeta(lookup.account_key) for lookup in message.address_table_lookups]
        for i, key in enumerate(message.account_keys):
            metas.append(AccountMeta(key, is_signer=False, is_writable=message.is_writable_index(i)))

        writable, readonly = loaded_account_keys(message, tables)
        metas.extend(AccountMeta(key, is_writable=True) for key in writable)
        metas.extend(AccountMeta(key) for key in readonly)
        return metas

    def create_multisig(
        self,
        creator: str,
        create_key: str,
        members: Sequence[Member],
        threshold: int,
        time_lock: int = 0,
        config_authority: Optional[str] = None,
        rent_collector: Optional[str] = None,
        memo: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> TransactionPlan:
        check_range("threshold", threshold, 1, U16_MAX)
        check_range("time lock", time_lock, 0, U32_MAX)

        voting_members = sum(1 for m in members if m.can_vote())
        if threshold < 1 or threshold > voting_members:
            raise InvalidThreshold(threshold, voting_members, explain_threshold_error(members, threshold))

        multisig, _ = get_multisig_pda(create_key, self.program_id)
        program_config, _ = get_program_config_pda(self.program_id)
        treasury = self.fetch_program_config(deadline).treasury

        logger.info(f"Creating multisig {multisig} ({threshold} of {len(members)})")
        ix = multisig_create_v2(
            program_config, treasury, multisig, create_key, creator, members, threshold, time_lock,
            config_authority=config_authority, rent_collector=rent_collector, memo=memo,
            program_id=self.program_id,
        )
        return TransactionPlan(action="create", fee_payer=creator, instructions=[ix], multisig=multisig)

    def describe(self, multisig: str, recent: int = 5, deadline: Optional[Deadline] = None) -> MultisigInfo:
        account = self.fetch_multisig(multisig, deadline)

        vault_address, vault_bump = get_vault_pda(multisig, 0, self.program_id)
        vault = VaultInfo(
            vault_address=vault_address,
            parent_multisig=multisig,
            vault_index=0,
            bump=vault_bump,
            balance_lamports=self.store.get_balance(vault_address, deadline),
        )

        proposals = []
        last = account.transaction_index
        for index in range(last, max(0, last - recent), -1):
            transaction_address, _ = get_transaction_pda(multisig, index, self.program_id)
            proposal_address, _ = get_proposal_pda(multisig, index, self.program_id)
            data = self.store.get(proposal_address, deadline)
            info = ProposalInfo(
                transaction_index=index,
                transaction_address=transaction_address,
                proposal_address=proposal_address,
                status=None,
            )
            if data is not None:
                proposal = decode_proposal(data)
                info.status = describe_status(proposal.status)
                info.approvals = len(proposal.approved)
                info.rejections = len(proposal.rejected)
                info.cancellations = len(proposal.cancelled)
            proposals.append(info)

        voting = account.voting_member_count()
        return MultisigInfo(
            address=multisig,
            threshold=account.threshold,
            member_count=len(account.members),
            voting_member_count=voting,
            threshold_display=f"{account.threshold} of {voting}",
            time_lock_seconds=account.time_lock,
            time_lock_display=format_timelock(account.time_lock),
            create_key=account.create_key,
            config_authority=account.config_authority,
            rent_collector=account.rent_collector,
            bump=account.bump,
            transaction_index=account.transaction_index,
            stale_transaction_index=account.stale_transaction_index,
            members=[MemberInfo(m.key, permission_names(m.permissions.mask)) for m in account.members],
            vault=vault,
            recent_proposals=proposals,
        )

    # Submission

    def submit(
        self,
        plan: TransactionPlan,
        signers: Iterable[Signer],
        deadline: Optional[Deadline] = None,
        confirm: bool = False,
    ) -> str:
        """
        Sign `plan` with every signer that matches one of its required keys and
        send it. Raises MissingSignature before sending if any key is unsigned.

        With `confirm`, wait until the cluster reports the transaction at the
        configured commitment. The transaction is sent once; only its status
        is polled.
        """
        blockhash = self.store.get_latest_blockhash(deadline)
        tx = Transaction.new(plan.instructions, plan.fee_payer, blockhash)
        tx.sign(signers)
        raw = tx.serialize()

        logger.debug(f"Sending {plan.action} transaction {tx.signature} ({len(raw)} bytes)")
        signature = self.store.send_transaction(raw, deadline)
        logger.info(f"Submitted {plan.action} transaction: {signature}")

        if confirm:
            self.confirm(signature, deadline or Deadline(DEFAULT_CONFIRM_TIMEOUT))
        return signature

    def confirm(self, signature: str, deadline: Deadline) -> dict:
        """
        Poll the signature status until it reaches the configured commitment.
        Raises TransactionFailed if it landed with an error and Timeout when
        `deadline` runs out first.
        """
        commitment = self.config.commitment if self.config.commitment in COMMITMENT_LEVELS else "confirmed"
        wanted = COMMITMENT_LEVELS.index(commitment)

        while not deadline.expired():
            status = self.store.get_signature_status(signature, deadline)
            if status is not None:
                if status.get("err"):
                    logger.info(f"Transaction failed with error: {status['err']}")
                    raise TransactionFailed(signature, status["err"])
                level = status.get("confirmationStatus") or "finalized"
                if level in COMMITMENT_LEVELS and COMMITMENT_LEVELS.index(level) >= wanted:
                    logger.info("Transaction confirmed successfully")
                    return status
            self.sleep(POLL_INTERVAL)

        raise Timeout(f"confirmation of {signature}")
