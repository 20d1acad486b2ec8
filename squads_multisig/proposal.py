"""
Client-side legality checks for proposal votes and execution.

The program is authoritative; these checks only refuse instructions it is
certain to reject, so a doomed transaction never costs a round trip.
"""

from dataclasses import replace
from typing import Optional

from .errors import (
    AlreadyVoted,
    NoExecutePermission,
    NoProposePermission,
    NotAMember,
    NotApproved,
    NoVotePermission,
    StaleTransaction,
    TimelockNotElapsed,
    WrongState,
)
from .types import (
    Active,
    Approved,
    Cancelled,
    Draft,
    Executed,
    Executing,
    Member,
    MultisigAccount,
    ProposalAccount,
    ProposalStatus,
    Rejected,
    VoteOutcome,
)

VOTE_ACTIONS = ("approve", "reject", "cancel")

# Statuses from which each vote is accepted
_VOTABLE = {
    "approve": (Active,),
    "reject": (Active,),
    "cancel": (Active, Approved),
}


def status_label(status: Optional[ProposalStatus]) -> str:
    if isinstance(status, Draft):
        return "Draft"
    if isinstance(status, Active):
        return "Active"
    if isinstance(status, Rejected):
        return "Rejected"
    if isinstance(status, Approved):
        return "Approved"
    if isinstance(status, Executing):
        return "Executing"
    if isinstance(status, Executed):
        return "Executed"
    if isinstance(status, Cancelled):
        return "Cancelled"
    return "Unknown"


def is_stale(proposal: ProposalAccount, multisig: MultisigAccount) -> bool:
    return proposal.transaction_index <= multisig.stale_transaction_index


def has_reached_threshold(proposal: ProposalAccount, multisig: MultisigAccount) -> bool:
    """Computed from the vote set, since the status may lag the client's view."""
    return len(proposal.approved) >= multisig.threshold


def check_vote(
    proposal: ProposalAccount,
    member: Member,
    action: str,
    multisig: Optional[MultisigAccount] = None,
) -> None:
    if action not in _VOTABLE:
        raise ValueError(f"Unknown vote action {action!r}, expected one of {', '.join(VOTE_ACTIONS)}")

    if multisig is not None:
        if multisig.find_member(member.key) is None:
            raise NotAMember(member.key, proposal.multisig)
        # Cancelling an approved stale proposal is still allowed on-chain
        if action != "cancel" and is_stale(proposal, multisig):
            raise StaleTransaction(action, proposal.transaction_index, multisig.stale_transaction_index)

    if not isinstance(proposal.status, _VOTABLE[action]):
        raise WrongState(action, status_label(proposal.status))

    vote = proposal.vote_of(member.key)
    if vote is not None:
        raise AlreadyVoted(member.key, vote)

    if not member.can_vote():
        raise NoVotePermission(member.key)


def check_approvable(proposal: ProposalAccount, member: Member, multisig: Optional[MultisigAccount] = None) -> None:
    check_vote(proposal, member, "approve", multisig)


def check_rejectable(proposal: ProposalAccount, member: Member, multisig: Optional[MultisigAccount] = None) -> None:
    check_vote(proposal, member, "reject", multisig)


def check_cancellable(proposal: ProposalAccount, member: Member, multisig: Optional[MultisigAccount] = None) -> None:
    check_vote(proposal, member, "cancel", multisig)


def executable_after(proposal: ProposalAccount, multisig: MultisigAccount) -> Optional[int]:
    """Unix time at which an approved proposal becomes executable."""
    if not isinstance(proposal.status, Approved):
        return None
    return proposal.status.timestamp + multisig.time_lock


def timelock_remaining(proposal: ProposalAccount, multisig: MultisigAccount, now: int) -> int:
    after = executable_after(proposal, multisig)
    if after is None:
        return multisig.time_lock
    return max(0, after - now)


def rejection_cutoff(multisig: MultisigAccount) -> int:
    """Rejections that make approval impossible."""
    return multisig.voting_member_count() - multisig.threshold + 1


def apply_vote(proposal: ProposalAccount, multisig: MultisigAccount, voter: str, action: str, now: int) -> ProposalAccount:
    """
    Return the proposal as the program leaves it after `voter` casts
    `action` at `now`. Legality is not checked here; see `check_vote`.
    """
    approved = list(proposal.approved)
    rejected = list(proposal.rejected)
    cancelled = list(proposal.cancelled)
    status = proposal.status

    if action == "approve":
        approved.append(voter)
        if len(approved) >= multisig.threshold:
            status = Approved(now)
    elif action == "reject":
        rejected.append(voter)
        if len(rejected) >= rejection_cutoff(multisig):
            status = Rejected(now)
    elif action == "cancel":
        cancelled.append(voter)
        if len(cancelled) >= multisig.threshold:
            status = Cancelled(now)
    else:
        raise ValueError(f"Unknown vote action {action!r}, expected one of {', '.join(VOTE_ACTIONS)}")

    return replace(proposal, status=status, approved=approved, rejected=rejected, cancelled=cancelled)


def vote_outcome(proposal: ProposalAccount, multisig: MultisigAccount, action: str, now: int) -> VoteOutcome:
    after = executable_after(proposal, multisig)
    return VoteOutcome(
        action=action,
        status=status_label(proposal.status),
        approvals=len(proposal.approved),
        rejections=len(proposal.rejected),
        cancellations=len(proposal.cancelled),
        threshold=multisig.threshold,
        threshold_reached=has_reached_threshold(proposal, multisig),
        executable_after=after,
        timelock_remaining=timelock_remaining(proposal, multisig, now) if after is not None else 0,
    )


def check_executable(proposal: ProposalAccount, multisig: MultisigAccount, member: Member, now: int) -> None:
    if not isinstance(proposal.status, Approved):
        raise NotApproved(status_label(proposal.status), len(proposal.approved), multisig.threshold)

    after = executable_after(proposal, multisig)
    if now < after:
        raise TimelockNotElapsed(after - now, after)

    if not member.can_execute():
        raise NoExecutePermission(member.key)


def check_proposable(multisig: MultisigAccount, address: str, multisig_address: Optional[str] = None) -> Member:
    """Return the proposing member, or raise if `address` may not propose."""
    member = multisig.find_member(address)
    if member is None:
        raise NotAMember(address, multisig_address)
    if not member.can_propose():
        raise NoProposePermission(address)
    return member
