"""Shared fixtures: deterministic addresses, an in-memory record store and sample records."""

from typing import Optional

from squads_multisig.codec import bytes_to_address, encode_multisig, encode_proposal
from squads_multisig.errors import SubmissionRejected
from squads_multisig.rpc import Deadline, RecordStore
from squads_multisig.types import (
    PERMISSION_FULL,
    Active,
    Member,
    MultisigAccount,
    ProposalAccount,
)

BLOCKHASH = bytes_to_address(bytes([0xAB]) * 32)


def addr(n: int) -> str:
    """A valid, deterministic address; n must be in 1..255."""
    return bytes_to_address(bytes([n]) * 32)


class FakeRecordStore(RecordStore):
    def __init__(self):
        self.accounts: dict[str, bytes] = {}
        self.balances: dict[str, int] = {}
        self.sent: list[bytes] = []
        self.reject_with: Optional[dict] = None
        self.reads = 0
        self.statuses: dict[str, Optional[dict]] = {}
        self.status_polls = 0

    def get(self, address: str, deadline: Optional[Deadline] = None) -> Optional[bytes]:
        if deadline is not None:
            deadline.remaining("getAccountInfo")
        self.reads += 1
        return self.accounts.get(address)

    def get_balance(self, address: str, deadline: Optional[Deadline] = None) -> int:
        return self.balances.get(address, 0)

    def get_latest_blockhash(self, deadline: Optional[Deadline] = None) -> str:
        if deadline is not None:
            deadline.remaining("getLatestBlockhash")
        return BLOCKHASH

    def send_transaction(self, raw: bytes, deadline: Optional[Deadline] = None) -> str:
        if self.reject_with is not None:
            raise SubmissionRejected("sendTransaction", self.reject_with)
        self.sent.append(raw)
        return "5igSignature"

    def get_signature_status(self, signature: str, deadline: Optional[Deadline] = None) -> Optional[dict]:
        self.status_polls += 1
        if signature in self.statuses:
            return self.statuses[signature]
        if self.sent:
            return {"slot": 1, "confirmations": 0, "err": None, "confirmationStatus": "confirmed"}
        return None


def make_multisig(
    masks=(PERMISSION_FULL, PERMISSION_FULL, PERMISSION_FULL),
    threshold: int = 2,
    time_lock: int = 0,
    transaction_index: int = 0,
    stale_transaction_index: int = 0,
) -> MultisigAccount:
    return MultisigAccount(
        create_key=addr(90),
        config_authority=None,
        threshold=threshold,
        time_lock=time_lock,
        transaction_index=transaction_index,
        stale_transaction_index=stale_transaction_index,
        rent_collector=None,
        bump=254,
        members=[Member.with_mask(addr(i + 1), mask) for i, mask in enumerate(masks)],
    )


def make_proposal(multisig: str, transaction_index: int = 1, status=None, approved=(), rejected=(), cancelled=()):
    return ProposalAccount(
        multisig=multisig,
        transaction_index=transaction_index,
        status=status if status is not None else Active(timestamp=1_700_000_000),
        bump=255,
        approved=list(approved),
        rejected=list(rejected),
        cancelled=list(cancelled),
    )


def store_multisig(store: FakeRecordStore, address: str, account: MultisigAccount) -> None:
    store.accounts[address] = encode_multisig(account)


def store_proposal(store: FakeRecordStore, address: str, proposal: ProposalAccount) -> None:
    store.accounts[address] = encode_proposal(proposal)
